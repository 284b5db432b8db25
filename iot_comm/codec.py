from __future__ import annotations

"""Telemetry codec.

One sensor reading is 4 bytes on the wire:

    | bytes 0..2              | bytes 2..4              |
    |-------------------------|-------------------------|
    | temperature (binary16)  | humidity (binary16)     |

Both halves use the host's native byte order. Decoding is a direct bit
reinterpretation: a reading keeps the raw 16-bit patterns and derives its
float values from them. Every bit pattern is a legal reading (NaN and Inf
included) and decode -> encode -> decode is exact, NaN payloads and signs
included.

A telemetry payload is the concatenation of several readings in zone order.
"""

import math
import struct
from dataclasses import dataclass
from typing import Iterable

from .errors import MalformedPayload

READING_SIZE = 4

_READING = struct.Struct("=HH")
_HALF = struct.Struct("=e")
_BITS = struct.Struct("=H")

_POS_INF_BITS = 0x7C00
_SIGN_BIT = 0x8000


def half_bits(value: float) -> int:
    """Bit pattern of the binary16 value nearest to `value`.

    Finite values outside the binary16 range saturate to +/-inf, the same way
    a float32 -> f16 conversion does.
    """
    try:
        return _BITS.unpack(_HALF.pack(value))[0]
    except OverflowError:
        return _POS_INF_BITS | (_SIGN_BIT if math.copysign(1.0, value) < 0 else 0)


def half_value(bits: int) -> float:
    return _HALF.unpack(_BITS.pack(bits))[0]


def to_half(value: float) -> float:
    """Round `value` to the nearest binary16 float."""
    return half_value(half_bits(value))


@dataclass(frozen=True)
class SensorReading:
    """One zone's values as raw binary16 patterns.

    `temperature` (°C) and `humidity` (%) are derived from the bits.
    """

    temperature_bits: int
    humidity_bits: int

    def __post_init__(self) -> None:
        for bits in (self.temperature_bits, self.humidity_bits):
            if not 0 <= bits <= 0xFFFF:
                raise ValueError(f"not a 16-bit pattern: {bits!r}")

    @classmethod
    def from_values(cls, temperature: float, humidity: float) -> SensorReading:
        return cls(temperature_bits=half_bits(temperature), humidity_bits=half_bits(humidity))

    @property
    def temperature(self) -> float:
        return half_value(self.temperature_bits)

    @property
    def humidity(self) -> float:
        return half_value(self.humidity_bits)


def encode(reading: SensorReading) -> bytes:
    return _READING.pack(reading.temperature_bits, reading.humidity_bits)


def decode(data: bytes) -> SensorReading:
    """Reinterpret exactly 4 bytes as a reading.

    Raises:
        MalformedPayload: if `data` is not exactly READING_SIZE bytes long.
    """
    if len(data) != READING_SIZE:
        raise MalformedPayload(len(data), f"a reading is {READING_SIZE} bytes, got {len(data)}")
    temperature_bits, humidity_bits = _READING.unpack(data)
    return SensorReading(temperature_bits=temperature_bits, humidity_bits=humidity_bits)


def encode_readings(readings: Iterable[SensorReading]) -> bytes:
    return b"".join(encode(r) for r in readings)


def decode_payload(payload: bytes) -> list[SensorReading]:
    """Split a payload into 4-byte records and decode each one independently.

    Raises:
        MalformedPayload: if the payload length is not a multiple of 4.
    """
    if len(payload) % READING_SIZE:
        raise MalformedPayload(len(payload))
    view = memoryview(payload)
    return [decode(bytes(view[i : i + READING_SIZE])) for i in range(0, len(payload), READING_SIZE)]


def format_reading(reading: SensorReading) -> str:
    return f"temperature: {reading.temperature:.2f} °C, humidity: {reading.humidity:.2f}%"
