import dataclasses

import pytest

from horust.events import (
    Event,
    ForceKill,
    HealthCheck,
    HealthinessStatus,
    Kill,
    PidChanged,
    Run,
    ServiceExited,
    ServiceStatus,
    ShuttingDown,
    ShuttingDownInitiated,
    StatusChanged,
    StatusUpdate,
)


def test_healthiness_from_bool():
    assert HealthinessStatus.from_bool(True) is HealthinessStatus.HEALTHY
    assert HealthinessStatus.from_bool(False) is HealthinessStatus.UNHEALTHY


def test_service_status_display():
    assert ServiceStatus("FinishedFailed") is ServiceStatus.FINISHED_FAILED
    assert str(ServiceStatus("FinishedFailed")) == "FinishedFailed"
    assert str(ServiceStatus("InKilling")) == "InKilling"


@pytest.mark.parametrize("status", list(ServiceStatus))
def test_service_status_round_trips_through_display(status):
    assert ServiceStatus(str(status)) is status


def test_service_status_has_nine_members():
    names = [
        "Starting",
        "Started",
        "Running",
        "InKilling",
        "Success",
        "Finished",
        "FinishedFailed",
        "Failed",
        "Initial",
    ]
    statuses = {ServiceStatus(name) for name in names}
    assert len(statuses) == 9
    assert statuses == set(ServiceStatus)


def test_events_compare_by_value():
    assert StatusChanged("sample", ServiceStatus.INITIAL) == StatusChanged(
        "sample", ServiceStatus.INITIAL
    )
    assert StatusChanged("sample", ServiceStatus.INITIAL) != StatusUpdate(
        "sample", ServiceStatus.INITIAL
    )
    assert ForceKill("a") != Kill("a")


def test_events_are_hashable():
    events = {Run("a"), Run("a"), ServiceExited("a", 1), PidChanged("a", 42)}
    assert len(events) == 3


def test_events_are_frozen():
    event = HealthCheck("a", HealthinessStatus.HEALTHY)
    with pytest.raises(dataclasses.FrozenInstanceError):
        event.status = HealthinessStatus.UNHEALTHY
    assert event == HealthCheck("a", HealthinessStatus.HEALTHY)
    assert dataclasses.astuple(event) == ("a", HealthinessStatus.HEALTHY)


def test_event_union_matches_every_variant():
    shutdown = ShuttingDownInitiated(ShuttingDown.GRACEFULLY)
    assert isinstance(shutdown, Event)
    assert isinstance(Run("a"), Event)
    assert not isinstance("a", Event)
    assert dataclasses.astuple(shutdown) == (ShuttingDown.GRACEFULLY,)
    assert dataclasses.astuple(PidChanged("a", 42)) == ("a", 42)
    assert dataclasses.astuple(ServiceExited("a", 1)) == ("a", 1)


def test_events_pattern_match():
    def describe(event):
        match event:
            case StatusChanged(name, ServiceStatus.STARTED):
                return name
            case ShuttingDownInitiated(kind):
                return kind
        return None

    assert describe(StatusChanged("web", ServiceStatus.STARTED)) == "web"
    assert describe(ShuttingDownInitiated(ShuttingDown.FORCEFULLY)) is ShuttingDown.FORCEFULLY
    assert describe(StatusChanged("web", ServiceStatus.RUNNING)) is None