"""Events exchanged between the supervisor's components, and their status values."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ServiceStatus(Enum):
    """Lifecycle state of a service."""

    #: The service will be started as soon as possible.
    STARTING = "Starting"
    #: The service has a pid.
    STARTED = "Started"
    #: The service is up and healthy.
    RUNNING = "Running"
    #: Friendly signal sent, waiting for the process to terminate.
    IN_KILLING = "InKilling"
    #: A successfully exited service.
    SUCCESS = "Success"
    #: A finished service has done its job and won't be restarted.
    FINISHED = "Finished"
    #: A failed, finished service won't be restarted.
    FINISHED_FAILED = "FinishedFailed"
    #: A failed service might be restarted if the restart policy demands so.
    FAILED = "Failed"
    #: Initial state: the service is marked to be run as soon as possible.
    INITIAL = "Initial"

    def __str__(self) -> str:
        return self.value


class ShuttingDown(Enum):
    GRACEFULLY = "Gracefully"
    FORCEFULLY = "Forcefully"


class ExitStatus(Enum):
    SUCCESSFUL = "Successful"
    SOME_SERVICE_FAILED = "SomeServiceFailed"


class HealthinessStatus(Enum):
    HEALTHY = "Healthy"
    UNHEALTHY = "Unhealthy"

    @classmethod
    def from_bool(cls, check: bool) -> HealthinessStatus:
        """HEALTHY when the check passed, UNHEALTHY otherwise."""
        return cls.HEALTHY if check else cls.UNHEALTHY


@dataclass(frozen=True)
class PidChanged:
    service_name: str
    pid: int


@dataclass(frozen=True)
class StatusUpdate:
    """A command to update a service's status."""

    service_name: str
    status: ServiceStatus


@dataclass(frozen=True)
class StatusChanged:
    """Notification that a service's status has changed."""

    service_name: str
    status: ServiceStatus


@dataclass(frozen=True)
class ServiceExited:
    service_name: str
    exit_status: int


@dataclass(frozen=True)
class ForceKill:
    service_name: str


@dataclass(frozen=True)
class Kill:
    service_name: str


@dataclass(frozen=True)
class SpawnFailed:
    service_name: str


@dataclass(frozen=True)
class Run:
    service_name: str


@dataclass(frozen=True)
class ShuttingDownInitiated:
    shutting_down: ShuttingDown


@dataclass(frozen=True)
class HealthCheck:
    service_name: str
    status: HealthinessStatus


Event = (
    PidChanged
    | StatusUpdate
    | StatusChanged
    | ServiceExited
    | ForceKill
    | Kill
    | SpawnFailed
    | Run
    | ShuttingDownInitiated
    | HealthCheck
)