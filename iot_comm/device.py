from __future__ import annotations

# Simulated field controller.
#
# A controller multiplexes ZONE_COUNT sensors. Every telemetry cycle resamples
# each sensor in place and encodes all of them, in zone order, into one
# payload of 4 * zone_count bytes.
#
# The sampling ranges are a simulation artifact, not real sensor bounds.

import random
import secrets

from .codec import READING_SIZE, SensorReading, encode_readings, format_reading, half_bits, half_value, to_half

ZONE_COUNT = 8

TEMPERATURE_RANGE = (40.0, 50.0)
HUMIDITY_RANGE = (10.0, 20.0)


def _half_below(value: float) -> float:
    """Largest binary16 value strictly below a positive, representable `value`."""
    return half_value(half_bits(value) - 1)


def sample_half(lo: float, hi: float, rng: random.Random | None = None) -> float:
    """Sample uniformly from [lo, hi) at half precision.

    Rounding to binary16 can land on `hi`; such samples are pulled down to the
    next representable value so the upper bound stays exclusive.
    """
    r = rng or random
    value = to_half(r.uniform(lo, hi))
    if value >= hi:
        value = _half_below(hi)
    return value


class Sensor:
    """One zone slot. The reading is replaced on every update."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng
        self.reading = self._sample()

    def _sample(self) -> SensorReading:
        return SensorReading.from_values(
            temperature=sample_half(*TEMPERATURE_RANGE, rng=self._rng),
            humidity=sample_half(*HUMIDITY_RANGE, rng=self._rng),
        )

    def update(self) -> None:
        self.reading = self._sample()


class Controller:
    """A controller unit: a random identity plus a fixed set of zone sensors."""

    def __init__(self, *, zone_count: int = ZONE_COUNT, rng: random.Random | None = None) -> None:
        if zone_count <= 0:
            raise ValueError("zone_count must be > 0")
        # 16 random bytes -> 22 URL-safe characters.
        self.id: str = secrets.token_urlsafe(16)
        self.sensors: list[Sensor] = [Sensor(rng) for _ in range(zone_count)]

    @property
    def identity(self) -> bytes:
        """Connection identity presented to the broker."""
        return self.id.encode("ascii")

    @property
    def zone_count(self) -> int:
        return len(self.sensors)

    @property
    def payload_size(self) -> int:
        return READING_SIZE * len(self.sensors)

    @property
    def readings(self) -> list[SensorReading]:
        return [s.reading for s in self.sensors]

    def sensor_data(self) -> bytes:
        """Resample every zone and return the encoded payload.

        Format (one 4-byte record per zone):

            | s_0     | s_1     | ... | s_n     |
            |---------|---------|-----|---------|
            | [u8; 4] | [u8; 4] | ... | [u8; 4] |

        Call this exactly once per telemetry cycle so logged zone numbers and
        the stored readings stay consistent.
        """
        for sensor in self.sensors:
            sensor.update()
        return encode_readings(self.readings)

    refresh_and_encode = sensor_data

    def __str__(self) -> str:
        lines = [f"{self.id}:"]
        for i, reading in enumerate(self.readings):
            lines.append(f"  zone {i}: {format_reading(reading)}")
        return "\n".join(lines)
