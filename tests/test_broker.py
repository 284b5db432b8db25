import threading
import time

import pytest
import zmq

from iot_comm.broker import Broker
from iot_comm.client import ClientFleet, ControllerClient
from iot_comm.device import Controller
from iot_comm.errors import BindError, TransportError

LOCAL = "tcp://127.0.0.1:*"


@pytest.fixture
def lines():
    return []


@pytest.fixture
def broker(lines):
    b = Broker(frontend_addr=LOCAL, emit=lines.append)
    b.start()
    try:
        yield b
    finally:
        b.stop()


def _run_concurrently(n, target):
    errors = []

    def wrapped(i):
        try:
            target(i)
        except Exception as e:  # surfaced through `errors`
            errors.append(e)

    threads = [threading.Thread(target=wrapped, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=15.0)
    assert errors == []


def test_zero_payload_is_logged_and_acknowledged(broker, lines):
    with ControllerClient(address=broker.endpoint) as client:
        reply = client.request(bytes(32), timeout=5.0)

    assert reply == b"R"
    (log,) = [line for line in lines if line.startswith(f"{client.id}:")]
    sensor_lines = log.splitlines()[1:]
    assert [line.split(":")[0] for line in sensor_lines] == [f"  sensor {i}" for i in range(8)]
    assert all("temperature: 0.00 °C, humidity: 0.00%" in line for line in sensor_lines)


def test_replies_go_back_to_the_sending_connection():
    def echo(identity, payload):
        return identity + b"/" + payload

    with Broker(frontend_addr=LOCAL, handler=echo) as b:
        results = {}

        def client_task(i):
            with ControllerClient(address=b.endpoint) as client:
                got = []
                for k in range(5):
                    payload = f"{i}-{k}".encode()
                    got.append((client.request(payload, timeout=5.0), client.controller.identity + b"/" + payload))
                results[i] = got

        _run_concurrently(20, client_task)

    assert len(results) == 20
    for got in results.values():
        for reply, expected in got:
            assert reply == expected


def test_every_connection_gets_its_own_acks(broker, lines):
    counts = {}

    def client_task(i):
        with ControllerClient(address=broker.endpoint) as client:
            counts[client.id] = sum(1 for _ in range(3) if client.request(timeout=5.0) == b"R")

    _run_concurrently(10, client_task)

    assert len(counts) == 10
    assert set(counts.values()) == {3}
    for cid in counts:
        assert sum(1 for line in lines if line.startswith(f"{cid}:")) == 3


def test_requests_below_pool_size_are_all_answered():
    def slow(identity, payload):
        time.sleep(0.2)
        return b"R"

    with Broker(frontend_addr=LOCAL, num_workers=5, handler=slow) as b:
        elapsed = {}

        def client_task(i):
            with ControllerClient(address=b.endpoint) as client:
                start = time.time()
                assert client.request(timeout=3.0) == b"R"
                elapsed[i] = time.time() - start

        _run_concurrently(4, client_task)

    assert len(elapsed) == 4
    assert max(elapsed.values()) < 3.0


def test_partial_record_gets_no_reply(broker, lines):
    with ControllerClient(address=broker.endpoint) as client:
        with pytest.raises(TimeoutError):
            client.request(bytes(31), timeout=0.5)
        assert client.request(bytes(32), timeout=5.0) == b"R"

    assert any("discarded 31-byte payload" in line for line in lines)
    assert broker.pool.failures == {}


def test_bind_failure_is_fatal(broker):
    other = Broker(frontend_addr=broker.endpoint)
    with pytest.raises(BindError):
        other.start()
    assert not other.running


def test_stop_is_idempotent(lines):
    b = Broker(frontend_addr=LOCAL, emit=lines.append)
    b.start()
    assert b.running
    assert b.endpoint.startswith("tcp://127.0.0.1:")
    b.stop()
    b.stop()
    assert not b.running
    assert b.pool.alive == 0
    assert b.wait(timeout=0.1)


def test_fleet_reports_periodically_and_stops(broker):
    replies = []
    fleet = ClientFleet(3, address=broker.endpoint, interval=0.05, on_reply=lambda cid, r: replies.append((cid, r)))
    fleet.start()
    try:
        deadline = time.time() + 5.0
        while time.time() < deadline:
            if len(fleet.controller_ids) == 3 and {cid for cid, _ in replies} == set(fleet.controller_ids.values()):
                break
            time.sleep(0.05)
    finally:
        fleet.stop()

    assert {cid for cid, _ in replies} == set(fleet.controller_ids.values())
    assert all(r == b"R" for _, r in replies)
    assert fleet.alive == 0
    assert fleet.failures == {}


def test_client_identity_is_controller_id():
    controller = Controller()
    client = ControllerClient(address="tcp://127.0.0.1:1", controller=controller)
    assert client.id == controller.id
    with pytest.raises(RuntimeError):
        client.send(b"")


def test_multi_frame_requests_do_not_take_down_the_pool(broker, lines):
    ctx = zmq.Context.instance()
    raw = ctx.socket(zmq.DEALER)
    raw.setsockopt(zmq.LINGER, 0)
    raw.setsockopt(zmq.IDENTITY, b"raw-client")
    raw.connect(broker.endpoint)
    try:
        for _ in range(10):
            raw.send_multipart([b"a", b"b"])

        with ControllerClient(address=broker.endpoint) as client:
            assert client.request(bytes(32), timeout=5.0) == b"R"

        deadline = time.time() + 5.0
        while time.time() < deadline and sum("discarded request" in line for line in lines) < 10:
            time.sleep(0.01)
    finally:
        raw.close()

    assert broker.pool.alive == broker.pool.size
    assert broker.pool.failures == {}
    assert broker.running
    discarded = [line for line in lines if "discarded request" in line]
    assert len(discarded) == 10
    assert all("b'raw-client'" in line for line in discarded)


def test_broker_fails_loudly_once_every_worker_has_exited(lines):
    def crash(identity, payload):
        raise RuntimeError("handler crashed")

    b = Broker(frontend_addr=LOCAL, num_workers=2, handler=crash, emit=lines.append)
    b.start()
    try:
        with ControllerClient(address=b.endpoint) as client:
            client.send(bytes(32))
            client.send(bytes(32))
            with pytest.raises(TransportError):
                b.wait(timeout=5.0)
    finally:
        b.stop()

    assert not b.running
    assert b.pool.alive == 0
    assert len(b.pool.failures) == 2


def test_fleet_stop_reports_clients_that_do_not_exit(broker, capsys):
    entered = threading.Event()
    release = threading.Event()

    def blocking_reply(cid, reply):
        entered.set()
        release.wait(5.0)

    fleet = ClientFleet(1, address=broker.endpoint, interval=0.05, on_reply=blocking_reply)
    fleet.start()
    try:
        assert entered.wait(5.0)
        fleet.stop(timeout=0.1)
        out = capsys.readouterr().out
        assert "[client] 1 still running after stop" in out
        assert "controller 0" in out
        assert not fleet._context.closed
    finally:
        release.set()
        fleet.join(timeout=2.0)
        fleet.stop()

    assert fleet.alive == 0
    assert fleet._context.closed
