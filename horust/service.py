"""Service definitions: parsing, defaults and validation."""

from __future__ import annotations

import logging
import os
import re
import signal
import tomllib
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Iterable, Mapping

from horust.environment import Environment, User
from horust.errors import CommandEmpty, MissingDependency, ValidationError, ValidationErrors

log = logging.getLogger(__name__)

_U32_MAX = (1 << 32) - 1
_U64_MAX = (1 << 64) - 1
_I32_MIN = -(1 << 31)
_I32_MAX = (1 << 31) - 1

_VARIABLE = re.compile(r"\$(?:\{([^}]*)\}|(\w+))")


def expand(text: str) -> str:
    """Expand ``$NAME``, ``${NAME}``, ``${NAME:-default}`` and a leading ``~``.

    A variable that is not set, and has no default, raises ValueError.
    """

    def substitute(match: re.Match[str]) -> str:
        braced, bare = match.groups()
        name = bare if bare is not None else braced
        default = None
        if braced is not None and ":-" in braced:
            name, default = braced.split(":-", 1)
        value = os.environ.get(name)
        if value is None:
            if default is None:
                raise ValueError(
                    f"error looking key '{name}' up: environment variable not found"
                )
            return default
        return value

    expanded = _VARIABLE.sub(substitute, text)
    if expanded == "~" or expanded.startswith("~/"):
        home = os.path.expanduser("~")
        if home != "~":
            expanded = home + expanded[1:]
    return expanded


_NANOS_PER_SECOND = 1_000_000_000
_DURATION_UNITS: dict[str, int] = {
    **dict.fromkeys(("nsec", "ns"), 1),
    **dict.fromkeys(("usec", "us"), 1_000),
    **dict.fromkeys(("msec", "ms"), 1_000_000),
    **dict.fromkeys(("seconds", "second", "sec", "s"), _NANOS_PER_SECOND),
    **dict.fromkeys(("minutes", "minute", "min", "m"), 60 * _NANOS_PER_SECOND),
    **dict.fromkeys(("hours", "hour", "hr", "h"), 3_600 * _NANOS_PER_SECOND),
    **dict.fromkeys(("days", "day", "d"), 86_400 * _NANOS_PER_SECOND),
    **dict.fromkeys(("weeks", "week", "w"), 604_800 * _NANOS_PER_SECOND),
    **dict.fromkeys(("months", "month", "M"), 2_630_016 * _NANOS_PER_SECOND),
    **dict.fromkeys(("years", "year", "y"), 31_557_600 * _NANOS_PER_SECOND),
}
_DURATION_SHAPE = re.compile(r"\s*(?:\d+\s*[A-Za-z]+\s*)+")
_DURATION_PART = re.compile(r"(\d+)\s*([A-Za-z]+)")


def parse_duration(text: str) -> timedelta:
    """Parse a human-readable duration such as ``2s``, ``100ms`` or ``1h 30m``."""
    if not _DURATION_SHAPE.fullmatch(text):
        raise ValueError(f"invalid duration: {text!r}")
    total = 0
    for number, unit in _DURATION_PART.findall(text):
        try:
            total += int(number) * _DURATION_UNITS[unit]
        except KeyError:
            raise ValueError(f"unknown time unit {unit!r} in {text!r}") from None
    return timedelta(microseconds=total // 1_000)


_BYTE_UNITS: dict[str, int] = {
    "": 1,
    "B": 1,
    "KB": 1000,
    "MB": 1000**2,
    "GB": 1000**3,
    "TB": 1000**4,
    "PB": 1000**5,
    "KIB": 1024,
    "MIB": 1024**2,
    "GIB": 1024**3,
    "TIB": 1024**4,
    "PIB": 1024**5,
}
_BYTES = re.compile(r"\s*(\d+(?:\.\d+)?)\s*([A-Za-z]*)\s*")


def parse_bytes(text: str) -> int:
    """Parse a size such as ``100MB`` (decimal) or ``100 MiB`` (binary) into bytes."""
    match = _BYTES.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid size: {text!r}")
    number, unit = match.groups()
    try:
        multiplier = _BYTE_UNITS[unit.upper()]
    except KeyError:
        raise ValueError(f"unknown size unit {unit!r} in {text!r}") from None
    return int(Decimal(number) * multiplier)


# Field readers for parsed TOML tables.


def _table(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{where}: expected a table, got {value!r}")
    return value


def _only(table: Mapping[str, Any], allowed: Iterable[str], where: str) -> None:
    allowed = set(allowed)
    for key in table:
        if key not in allowed:
            raise ValueError(
                f"{where}: unknown field `{key}`, expected one of {sorted(allowed)}"
            )


def _string(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{where}: expected a string, got {value!r}")
    return value


def _boolean(value: Any, where: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{where}: expected a boolean, got {value!r}")
    return value


def _integer(value: Any, where: str, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{where}: expected an integer, got {value!r}")
    if not low <= value <= high:
        raise ValueError(f"{where}: {value} is out of range")
    return value


def _strings(value: Any, where: str) -> list[str]:
    if not isinstance(value, list):
        raise ValueError(f"{where}: expected a list of strings, got {value!r}")
    return [_string(item, where) for item in value]


def _duration(value: Any, where: str) -> timedelta:
    try:
        return parse_duration(_string(value, where))
    except ValueError as err:
        raise ValueError(f"{where}: {err}") from err


def _size(value: Any, where: str) -> int:
    try:
        return parse_bytes(_string(value, where))
    except ValueError as err:
        raise ValueError(f"{where}: {err}") from err


def _user(value: Any) -> User:
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= _U32_MAX:
        return User(value)
    if isinstance(value, str):
        return User(value)
    raise ValueError(f"user: expected a uid or a user name, got {value!r}")


@dataclass(frozen=True)
class LogOutput:
    """Where a service's output stream goes."""

    class Kind(Enum):
        STDOUT = "STDOUT"
        STDERR = "STDERR"
        PATH = "PATH"
        PIPE = "PIPE"

    kind: LogOutput.Kind
    target: Path | int | None = None

    STDOUT: ClassVar[LogOutput]
    STDERR: ClassVar[LogOutput]

    @classmethod
    def parse(cls, value: str) -> LogOutput:
        """``STDOUT``, ``STDERR``, or anything else as a file path."""
        if value == "STDOUT":
            return cls.STDOUT
        if value == "STDERR":
            return cls.STDERR
        return cls(cls.Kind.PATH, Path(value))

    def __str__(self) -> str:
        if self.kind in (self.Kind.STDOUT, self.Kind.STDERR):
            return self.kind.value
        return str(self.target)


LogOutput.STDOUT = LogOutput(LogOutput.Kind.STDOUT)
LogOutput.STDERR = LogOutput(LogOutput.Kind.STDERR)


@dataclass
class Healthiness:
    """Checks that tell whether a running service is healthy."""

    http_endpoint: str | None = None
    file_path: Path | None = None
    command: str | None = None
    max_failed: int = 3

    def has_any_check_defined(self) -> bool:
        return (
            self.http_endpoint is not None
            or self.file_path is not None
            or self.command is not None
        )

    @classmethod
    def _from_table(cls, data: Any) -> Healthiness:
        data = _table(data, "healthiness")
        _only(data, ("http-endpoint", "file-path", "command", "max-failed"), "healthiness")
        result = cls()
        if "http-endpoint" in data:
            result.http_endpoint = _string(data["http-endpoint"], "healthiness.http-endpoint")
        if "file-path" in data:
            result.file_path = Path(_string(data["file-path"], "healthiness.file-path"))
        if "command" in data:
            result.command = _string(data["command"], "healthiness.command")
        if "max-failed" in data:
            result.max_failed = _integer(
                data["max-failed"], "healthiness.max-failed", _I32_MIN, _I32_MAX
            )
        return result


class RestartStrategy(Enum):
    ALWAYS = "always"
    ON_FAILURE = "on-failure"
    NEVER = "never"

    @classmethod
    def parse(cls, value: str) -> RestartStrategy:
        """Case-insensitive lookup; unknown names mean NEVER."""
        try:
            return cls(value.lower())
        except ValueError:
            return cls.NEVER


@dataclass
class Restart:
    strategy: RestartStrategy = RestartStrategy.NEVER
    backoff: timedelta = timedelta(0)
    attempts: int = 0

    @classmethod
    def _from_table(cls, data: Any) -> Restart:
        data = _table(data, "restart")
        _only(data, ("strategy", "backoff", "attempts"), "restart")
        result = cls()
        if "strategy" in data:
            name = _string(data["strategy"], "restart.strategy")
            try:
                result.strategy = RestartStrategy(name)
            except ValueError:
                raise ValueError(f"restart.strategy: unknown variant `{name}`") from None
        if "backoff" in data:
            result.backoff = _duration(data["backoff"], "restart.backoff")
        if "attempts" in data:
            result.attempts = _integer(data["attempts"], "restart.attempts", 0, _U32_MAX)
        return result


class FailureStrategy(Enum):
    SHUTDOWN = "shutdown"
    KILL_DEPENDENTS = "kill-dependents"
    IGNORE = "ignore"

    @classmethod
    def parse(cls, value: str) -> FailureStrategy:
        """Case-insensitive lookup; ``kill-all`` means SHUTDOWN, unknown names IGNORE."""
        return {
            "kill-dependents": cls.KILL_DEPENDENTS,
            "kill-all": cls.SHUTDOWN,
            "ignore": cls.IGNORE,
        }.get(value.lower(), cls.IGNORE)


@dataclass
class Failure:
    successful_exit_code: list[int] = field(default_factory=lambda: [0])
    strategy: FailureStrategy = FailureStrategy.IGNORE

    @classmethod
    def _from_table(cls, data: Any) -> Failure:
        data = _table(data, "failure")
        _only(data, ("successful-exit-code", "strategy"), "failure")
        if "strategy" not in data:
            raise ValueError("failure: missing field `strategy`")
        name = _string(data["strategy"], "failure.strategy")
        try:
            strategy = FailureStrategy(name)
        except ValueError:
            raise ValueError(f"failure.strategy: unknown variant `{name}`") from None
        codes = [0]
        if "successful-exit-code" in data:
            raw = data["successful-exit-code"]
            if not isinstance(raw, list):
                raise ValueError(f"failure.successful-exit-code: expected a list, got {raw!r}")
            codes = [
                _integer(code, "failure.successful-exit-code", _I32_MIN, _I32_MAX)
                for code in raw
            ]
        return cls(successful_exit_code=codes, strategy=strategy)


class TerminationSignal(Enum):
    HUP = "HUP"
    INT = "INT"
    QUIT = "QUIT"
    ILL = "ILL"
    TRAP = "TRAP"
    ABRT = "ABRT"
    BUS = "BUS"
    FPE = "FPE"
    USR1 = "USR1"
    SEGV = "SEGV"
    USR2 = "USR2"
    PIPE = "PIPE"
    ALRM = "ALRM"
    TERM = "TERM"
    STKFLT = "STKFLT"
    CHLD = "CHLD"
    CONT = "CONT"
    STOP = "STOP"
    TSTP = "TSTP"
    TTIN = "TTIN"
    TTOU = "TTOU"
    URG = "URG"
    XCPU = "XCPU"
    XFSZ = "XFSZ"
    VTALRM = "VTALRM"
    PROF = "PROF"
    WINCH = "WINCH"
    IO = "IO"
    PWR = "PWR"
    SYS = "SYS"

    def to_signal(self) -> signal.Signals:
        """The operating-system signal; ValueError if this platform lacks it."""
        try:
            return signal.Signals[f"SIG{self.value}"]
        except KeyError:
            raise ValueError(f"signal SIG{self.value} is not available here") from None


@dataclass
class Termination:
    #: Signal sent instead of SIGTERM.
    signal: TerminationSignal = TerminationSignal.TERM
    #: Time to wait before SIGKILL.
    wait: timedelta = timedelta(seconds=5)
    #: Kill this service if any of these services failed.
    die_if_failed: list[str] = field(default_factory=list)

    @classmethod
    def _from_table(cls, data: Any) -> Termination:
        data = _table(data, "termination")
        _only(data, ("signal", "wait", "die-if-failed"), "termination")
        result = cls()
        if "signal" in data:
            name = _string(data["signal"], "termination.signal")
            try:
                result.signal = TerminationSignal(name)
            except ValueError:
                raise ValueError(f"termination.signal: unknown variant `{name}`") from None
        if "wait" in data:
            result.wait = _duration(data["wait"], "termination.wait")
        if "die-if-failed" in data:
            result.die_if_failed = _strings(data["die-if-failed"], "termination.die-if-failed")
        return result


@dataclass
class ResourceLimit:
    #: CPU time the process may use, in CPUs.
    cpu: float | None = None
    #: Maximum memory in bytes.
    memory: int | None = None
    #: Maximum number of processes or threads.
    pids_max: int | None = None

    def has_no_limit(self) -> bool:
        return self.cpu is None and self.memory is None and self.pids_max is None

    @classmethod
    def _from_table(cls, data: Any) -> ResourceLimit:
        data = _table(data, "resource-limit")
        _only(data, ("cpu", "memory", "pids-max"), "resource-limit")
        result = cls()
        if "cpu" in data:
            cpu = data["cpu"]
            if isinstance(cpu, bool) or not isinstance(cpu, (int, float)):
                raise ValueError(f"resource-limit.cpu: expected a number, got {cpu!r}")
            result.cpu = float(cpu)
        if "memory" in data:
            result.memory = _size(data["memory"], "resource-limit.memory")
        if "pids-max" in data:
            result.pids_max = _integer(data["pids-max"], "resource-limit.pids-max", 0, _U64_MAX)
        return result


_SERVICE_FIELDS = (
    "name",
    "command",
    "user",
    "working-directory",
    "stdout",
    "stdout-rotate-size",
    "stdout-should-append-timestamp-to-filename",
    "stderr",
    "start-delay",
    "start-after",
    "signal-rewrite",
    "restart",
    "healthiness",
    "failure",
    "environment",
    "termination",
    "resource-limit",
)


@dataclass
class Service:
    """A service to supervise."""

    name: str = ""
    command: str = "command"
    user: User = field(default_factory=User.current)
    working_directory: Path = field(default_factory=Path.cwd)
    stdout: LogOutput = LogOutput.STDOUT
    stdout_rotate_size: int = 0
    stdout_should_append_timestamp_to_filename: bool = False
    stderr: LogOutput = LogOutput.STDOUT
    start_delay: timedelta = timedelta(0)
    start_after: list[str] = field(default_factory=list)
    signal_rewrite: str | None = None
    restart: Restart = field(default_factory=Restart)
    healthiness: Healthiness = field(default_factory=Healthiness)
    failure: Failure = field(default_factory=Failure)
    environment: Environment = field(default_factory=Environment)
    termination: Termination = field(default_factory=Termination)
    resource_limit: ResourceLimit = field(default_factory=ResourceLimit)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Service:
        """Build from a parsed service table with kebab-case keys."""
        data = _table(data, "service")
        _only(data, _SERVICE_FIELDS, "service")
        if "command" not in data:
            raise ValueError("service: missing field `command`")
        service = cls(command=_string(data["command"], "command"), stderr=LogOutput.STDERR)
        if "name" in data:
            service.name = _string(data["name"], "name")
        if "user" in data:
            service.user = _user(data["user"])
        if "working-directory" in data:
            service.working_directory = Path(
                _string(data["working-directory"], "working-directory")
            )
        if "stdout" in data:
            service.stdout = LogOutput.parse(_string(data["stdout"], "stdout"))
        if "stdout-rotate-size" in data:
            service.stdout_rotate_size = _size(data["stdout-rotate-size"], "stdout-rotate-size")
        if "stdout-should-append-timestamp-to-filename" in data:
            service.stdout_should_append_timestamp_to_filename = _boolean(
                data["stdout-should-append-timestamp-to-filename"],
                "stdout-should-append-timestamp-to-filename",
            )
        if "stderr" in data:
            service.stderr = LogOutput.parse(_string(data["stderr"], "stderr"))
        if "start-delay" in data:
            service.start_delay = _duration(data["start-delay"], "start-delay")
        if "start-after" in data:
            service.start_after = _strings(data["start-after"], "start-after")
        if "signal-rewrite" in data:
            service.signal_rewrite = _string(data["signal-rewrite"], "signal-rewrite")
        if "restart" in data:
            service.restart = Restart._from_table(data["restart"])
        if "healthiness" in data:
            service.healthiness = Healthiness._from_table(data["healthiness"])
        if "failure" in data:
            service.failure = Failure._from_table(data["failure"])
        if "environment" in data:
            service.environment = Environment.from_mapping(
                _table(data["environment"], "environment")
            )
        if "termination" in data:
            service.termination = Termination._from_table(data["termination"])
        if "resource-limit" in data:
            service.resource_limit = ResourceLimit._from_table(data["resource-limit"])
        return service

    @classmethod
    def from_str(cls, text: str) -> Service:
        """Parse a TOML service definition after expanding environment variables."""
        return cls.from_mapping(tomllib.loads(expand(text)))

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> Service:
        """Load a TOML service definition from a file, expanding environment variables."""
        return cls.from_str(Path(path).read_text())

    @classmethod
    def from_command(cls, command: str) -> Service:
        """A service named after, and running, a single command."""
        return cls(name=command, command=command)

    def get_environment(self) -> list[str]:
        """``K=V`` entries for the service's process; user-defined values win."""
        return self.environment.get_environment(
            self.user.get_name(), str(self.user.get_home())
        )


def validate(services: list[Service]) -> list[Service]:
    """Return the services unchanged, or raise ValidationErrors listing every problem."""
    errors: list[ValidationError] = []
    names = {service.name for service in services}
    for service in services:
        if not service.command:
            errors.append(CommandEmpty(service=service.name))
        if service.start_after:
            log.debug(
                "Checking if all dependencies of '%s' exists, deps: %r",
                service.name,
                service.start_after,
            )
        errors.extend(
            MissingDependency(before=dependency, after=service.name)
            for dependency in service.start_after
            if dependency not in names
        )
    if errors:
        raise ValidationErrors(errors)
    return services