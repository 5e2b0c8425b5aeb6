"""Per-service health-check workers driven by bus events."""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from horust.bus import BusConnector
from horust.checks import get_checks
from horust.events import (
    HealthCheck,
    HealthinessStatus,
    ServiceExited,
    ServiceStatus,
    ShuttingDownInitiated,
    StatusChanged,
)
from horust.service import Healthiness, Service

log = logging.getLogger(__name__)

_CHECK_INTERVAL = 1.0


def check_health(healthiness: Healthiness) -> HealthinessStatus:
    """HEALTHY if every check passes."""
    return HealthinessStatus.from_bool(all(check.run(healthiness) for check in get_checks()))


def prepare_service(healthiness: Healthiness) -> None:
    """Prepare every check before the service starts; raises OSError on failure."""
    for check in get_checks():
        check.prepare(healthiness)


class _Worker:
    """Checks one service periodically and publishes the result."""

    def __init__(self, service: Service, bus: BusConnector) -> None:
        self._service = service
        self._bus = bus
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        with self._bus:
            while True:
                status = check_health(self._service.healthiness)
                self._bus.send_event(HealthCheck(self._service.name, status))
                if self._done.wait(_CHECK_INTERVAL):
                    break

    def signal_stop(self) -> None:
        self._done.set()

    def join(self) -> None:
        self._thread.join()

    def stop(self) -> None:
        self.signal_stop()
        self.join()


def _find_service(services: Iterable[Service], name: str) -> Service:
    for service in services:
        if service.name == name:
            return service
    raise LookupError(f"Service {name} not found.")


def run(bus: BusConnector, services: list[Service]) -> None:
    """Start and stop workers following the events on the bus, until shutdown."""
    workers: dict[str, _Worker] = {}
    try:
        for event in bus:
            match event:
                case StatusChanged(service_name=name, status=ServiceStatus.STARTED):
                    service = _find_service(services, name)
                    if not service.healthiness.has_any_check_defined():
                        bus.send_event(HealthCheck(name, HealthinessStatus.HEALTHY))
                        continue
                    previous = workers.pop(name, None)
                    if previous is not None:
                        previous.stop()
                    worker = _Worker(service, bus.join_bus())
                    worker.start()
                    workers[name] = worker
                case ServiceExited(service_name=name):
                    worker = workers.pop(name, None)
                    if worker is not None:
                        worker.stop()
                    else:
                        log.warning("Worker thread for %s not found.", name)
                case ShuttingDownInitiated():
                    for worker in workers.values():
                        worker.signal_stop()
                    for worker in workers.values():
                        worker.join()
                    break
    finally:
        bus.close()


def spawn(bus: BusConnector, services: list[Service]) -> threading.Thread:
    """Run the health-check dispatcher in a background thread."""
    thread = threading.Thread(target=run, args=(bus, services), daemon=True)
    thread.start()
    return thread