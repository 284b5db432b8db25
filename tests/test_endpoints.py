from iot_comm.endpoints import ACK, DEFAULT_PORT, DEFAULT_WORKERS, frontend_bind, frontend_connect


def test_endpoint_helpers():
    assert frontend_bind() == "tcp://*:5570"
    assert frontend_bind(6000, "127.0.0.1") == "tcp://127.0.0.1:6000"
    assert frontend_connect() == "tcp://localhost:5570"
    assert frontend_connect("broker.local", 7000) == "tcp://broker.local:7000"


def test_protocol_constants():
    assert DEFAULT_PORT == 5570
    assert DEFAULT_WORKERS == 5
    assert ACK == b"R"
