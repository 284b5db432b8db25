import random
import re

import pytest

from iot_comm.codec import decode_payload
from iot_comm.device import HUMIDITY_RANGE, TEMPERATURE_RANGE, Controller, sample_half


def test_sensor_data_is_32_bytes_within_ranges():
    c = Controller(rng=random.Random(1))
    for _ in range(50):
        data = c.sensor_data()
        assert len(data) == 32
        for r in decode_payload(data):
            assert TEMPERATURE_RANGE[0] <= r.temperature < TEMPERATURE_RANGE[1]
            assert HUMIDITY_RANGE[0] <= r.humidity < HUMIDITY_RANGE[1]


def test_refresh_mutates_zones_in_place():
    c = Controller(rng=random.Random(2))
    sensors = list(c.sensors)

    data = c.refresh_and_encode()

    assert c.sensors == sensors
    assert all(a is b for a, b in zip(c.sensors, sensors))
    assert decode_payload(data) == c.readings


def test_payload_size_follows_zone_count():
    c = Controller(zone_count=3)
    assert c.zone_count == 3
    assert len(c.sensor_data()) == c.payload_size == 12


def test_zone_count_must_be_positive():
    with pytest.raises(ValueError):
        Controller(zone_count=0)


def test_ids_are_unique_url_safe_tokens():
    ids = {Controller().id for _ in range(200)}
    assert len(ids) == 200
    for cid in ids:
        assert re.fullmatch(r"[A-Za-z0-9_-]+", cid)


def test_identity_is_id_bytes():
    c = Controller()
    assert c.identity == c.id.encode("ascii")


class _EdgeRng:
    """Always returns a value that rounds up to the upper bound."""

    def uniform(self, lo, hi):
        return hi - 1e-6


def test_sample_half_keeps_upper_bound_exclusive():
    assert sample_half(40.0, 50.0, rng=_EdgeRng()) == 49.96875
    assert sample_half(10.0, 20.0, rng=_EdgeRng()) == 19.984375


def test_str_lists_every_zone():
    c = Controller(zone_count=2)
    lines = str(c).splitlines()
    assert lines[0] == f"{c.id}:"
    assert lines[1].startswith("  zone 0: temperature: ")
    assert lines[2].startswith("  zone 1: temperature: ")
