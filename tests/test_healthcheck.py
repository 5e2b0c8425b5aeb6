import socket
import threading
import time

import pytest

from horust.bus import Bus
from horust.events import (
    HealthCheck,
    HealthinessStatus,
    ServiceExited,
    ServiceStatus,
    ShuttingDown,
    ShuttingDownInitiated,
    StatusChanged,
)
from horust.healthcheck import check_health, prepare_service, spawn
from horust.service import Healthiness, Service


def _collect(connector, predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    seen = []
    while time.monotonic() < deadline:
        for event in connector.try_get_events():
            seen.append(event)
            if predicate(event):
                return seen
        time.sleep(0.02)
    raise AssertionError(f"expected event not received, got {seen!r}")


def test_healthiness_check_file(tmp_path):
    file_path = tmp_path / "file.txt"
    healthiness = Healthiness(file_path=file_path, http_endpoint=None)
    assert check_health(healthiness) != HealthinessStatus.HEALTHY
    file_path.write_text("Hello world!")
    assert check_health(healthiness) == HealthinessStatus.HEALTHY
    assert check_health(Healthiness()) == HealthinessStatus.HEALTHY


def _handle_one_request(listener):
    conn, _ = listener.accept()
    with conn:
        conn.recv(512)
        conn.sendall(b"HTTP/1.1 200 OK\r\n\r\n")
    listener.close()


def test_healthiness_http():
    healthiness = Healthiness(http_endpoint="http://localhost:123/")
    assert check_health(healthiness) != HealthinessStatus.HEALTHY

    listener = socket.socket()
    listener.bind(("127.0.0.1", 0))
    listener.listen()
    port = listener.getsockname()[1]
    healthiness = Healthiness(http_endpoint=f"http://127.0.0.1:{port}")
    server = threading.Thread(target=_handle_one_request, args=(listener,))
    server.start()
    assert check_health(healthiness) == HealthinessStatus.HEALTHY
    server.join(timeout=2)
    assert not server.is_alive()
    assert check_health(healthiness) != HealthinessStatus.HEALTHY


def test_healthiness_command(tmp_path):
    file_path = tmp_path / "file.txt"
    healthiness = Healthiness(command=f"cat {file_path}")
    prepare_service(healthiness)
    assert check_health(healthiness) != HealthinessStatus.HEALTHY
    file_path.write_text("Hello world!")
    assert check_health(healthiness) == HealthinessStatus.HEALTHY
    assert check_health(Healthiness()) == HealthinessStatus.HEALTHY


def test_prepare_service_removes_stale_file(tmp_path):
    file_path = tmp_path / "up"
    file_path.write_text("stale")
    prepare_service(Healthiness(file_path=file_path))
    assert not file_path.exists()


def test_prepare_service_bad_command():
    with pytest.raises(OSError):
        prepare_service(Healthiness(command="no-such-program-for-horust-tests"))


@pytest.fixture
def running_bus():
    bus = Bus()
    checker = bus.join_bus()
    observer = bus.join_bus()
    bus_thread = threading.Thread(target=bus.run, daemon=True)
    bus_thread.start()
    yield checker, observer, bus_thread
    checker.close()
    observer.close()
    bus_thread.join(timeout=5)


def test_run_without_checks_reports_healthy(running_bus):
    checker, observer, bus_thread = running_bus
    worker = spawn(checker, [Service(name="a")])
    observer.send_event(StatusChanged("a", ServiceStatus.STARTED))
    events = _collect(observer, lambda e: isinstance(e, HealthCheck))
    assert events[-1] == HealthCheck("a", HealthinessStatus.HEALTHY)

    observer.send_event(ShuttingDownInitiated(ShuttingDown.GRACEFULLY))
    worker.join(timeout=5)
    assert not worker.is_alive()
    observer.close()
    bus_thread.join(timeout=5)
    assert not bus_thread.is_alive()


def test_run_with_worker(running_bus, tmp_path):
    checker, observer, bus_thread = running_bus
    service = Service(name="b", healthiness=Healthiness(file_path=tmp_path / "missing"))
    worker = spawn(checker, [service])
    observer.send_event(StatusChanged("b", ServiceStatus.STARTED))
    events = _collect(observer, lambda e: isinstance(e, HealthCheck))
    assert events[-1] == HealthCheck("b", HealthinessStatus.UNHEALTHY)

    observer.send_event(ServiceExited("b", 0))
    observer.send_event(ShuttingDownInitiated(ShuttingDown.GRACEFULLY))
    worker.join(timeout=5)
    assert not worker.is_alive()
    observer.close()
    bus_thread.join(timeout=5)
    assert not bus_thread.is_alive()