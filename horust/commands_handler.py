"""Answers control-socket requests from the supervisor's view of its services."""

from __future__ import annotations

import os
import socket
import threading
import time
from pathlib import Path
from typing import Iterable

import psutil

from horust.bus import BusConnector
from horust.events import (
    ForceKill,
    PidChanged,
    Run,
    ServiceStatus,
    ShuttingDownInitiated,
    StatusChanged,
    StatusUpdate,
)
from horust.messages import HorustChangeServiceStatus, HorustMsgServiceStatus
from horust.server import CommandsHandler

_POLL_INTERVAL = 0.3
_CPU_SAMPLE_INTERVAL = 0.2

_STATUS_MAP: dict[ServiceStatus, HorustMsgServiceStatus] = {
    ServiceStatus.STARTING: HorustMsgServiceStatus.STARTING,
    ServiceStatus.STARTED: HorustMsgServiceStatus.STARTED,
    ServiceStatus.RUNNING: HorustMsgServiceStatus.RUNNING,
    ServiceStatus.IN_KILLING: HorustMsgServiceStatus.INKILLING,
    ServiceStatus.SUCCESS: HorustMsgServiceStatus.SUCCESS,
    ServiceStatus.FINISHED: HorustMsgServiceStatus.FINISHED,
    ServiceStatus.FINISHED_FAILED: HorustMsgServiceStatus.FINISHEDFAILED,
    ServiceStatus.FAILED: HorustMsgServiceStatus.FAILED,
    ServiceStatus.INITIAL: HorustMsgServiceStatus.INITIAL,
}


def from_service_status(status: ServiceStatus) -> HorustMsgServiceStatus:
    """The wire status for a service status."""
    return _STATUS_MAP[status]


def _format_float(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else repr(float(value))


class HorustCommandsHandler(CommandsHandler):
    """Tracks service statuses and pids from the bus and serves the control socket."""

    def __init__(
        self, bus: BusConnector, uds_path: str | os.PathLike[str], services: Iterable[str]
    ) -> None:
        self.bus = bus
        self.uds_path = Path(uds_path)
        listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            listener.bind(os.fspath(self.uds_path))
            listener.listen()
            listener.setblocking(False)
        except OSError:
            listener.close()
            raise
        super().__init__(listener)
        names = list(services)
        self.services: dict[str, ServiceStatus] = dict.fromkeys(names, ServiceStatus.INITIAL)
        self.services_pids: dict[str, int] = dict.fromkeys(names, 0)

    def run(self) -> None:
        """Process bus events and serve requests until shutdown."""
        try:
            while True:
                for event in self.bus.try_get_events():
                    match event:
                        case StatusChanged(service_name=name, status=status):
                            if name not in self.services:
                                raise LookupError(f"Unknown service {name}.")
                            self.services[name] = status
                        case ShuttingDownInitiated():
                            self.uds_path.unlink()
                            return
                        case PidChanged(service_name=name, pid=pid):
                            if name not in self.services_pids:
                                raise LookupError(f"Unknown service {name}.")
                            self.services_pids[name] = pid
                self.accept()
                time.sleep(_POLL_INTERVAL)
        finally:
            self.unix_listener.close()
            self.bus.close()

    def get_service_status(self, service_name: str) -> HorustMsgServiceStatus:
        try:
            return from_service_status(self.services[service_name])
        except KeyError:
            raise LookupError(f"Error: service {service_name} not found.") from None

    def get_service_info(self, service_name: str) -> str:
        pid = self.services_pids.get(service_name)
        if pid is None:
            raise LookupError(f"Error: service {service_name} pid not found.")
        not_found = LookupError(f"Error: service {service_name} process not found.")
        if pid <= 0:
            raise not_found
        try:
            process = psutil.Process(pid)
            cpu_usage = process.cpu_percent(interval=_CPU_SAMPLE_INTERVAL)
            memory = process.memory_info().rss
            try:
                counters = process.io_counters()
                read_bytes, written_bytes = counters.read_bytes, counters.write_bytes
            except (AttributeError, psutil.AccessDenied):
                read_bytes = written_bytes = 0
        except psutil.NoSuchProcess:
            raise not_found from None
        return (
            f"service[{service_name}],pid:{pid},cpu_usage:{_format_float(cpu_usage)}%,"
            f"memory:{memory // 1024}KB,disk_usage_total_read:{read_bytes // 1024}KB,"
            f"disk_usage_total_write:{written_bytes // 1024}KB"
        )

    def update_service_status(
        self, service_name: str, new_status: HorustChangeServiceStatus
    ) -> HorustMsgServiceStatus:
        status = self.services.get(service_name)
        if status is None:
            raise LookupError(f"Service {service_name} not found.")
        if status != ServiceStatus.RUNNING:
            raise ValueError(f"Service {service_name} status is not present.")
        self.bus.send_event(StatusUpdate(service_name, ServiceStatus.IN_KILLING))
        self.bus.send_event(ForceKill(service_name))
        if new_status == HorustChangeServiceStatus.START:
            self.bus.send_event(Run(service_name))
        return self.get_service_status(service_name)


def spawn(
    bus: BusConnector, uds_path: str | os.PathLike[str], services: Iterable[str]
) -> threading.Thread:
    """Bind the control socket and serve it from a background thread."""
    handler = HorustCommandsHandler(bus, uds_path, services)
    thread = threading.Thread(target=handler.run, daemon=True)
    thread.start()
    return thread