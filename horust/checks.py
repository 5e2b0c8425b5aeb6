"""Health checks run against a service's healthiness settings."""

from __future__ import annotations

import http.client
import shlex
import shutil
import subprocess
import threading
import urllib.request

from horust.service import Healthiness

_HTTP_REQUEST_TIMEOUT = 1.0

_parsed_commands: dict[str, list[str]] = {}
_parsed_commands_lock = threading.Lock()


def find_program(program: str) -> str:
    """Full path of ``program`` found on the PATH."""
    path = shutil.which(program)
    if path is None:
        raise FileNotFoundError(f"Program {program!r} not found in PATH")
    return path


class Check:
    """A single kind of health check."""

    def run(self, healthiness: Healthiness) -> bool:
        """True when the check passes or is not configured."""
        raise NotImplementedError

    def prepare(self, healthiness: Healthiness) -> None:
        """Set up before the service starts; raises OSError on failure."""


class HttpCheck(Check):
    """Sends a HEAD request with a one second timeout; passes on a 2xx answer."""

    def run(self, healthiness: Healthiness) -> bool:
        endpoint = healthiness.http_endpoint
        if endpoint is None:
            return True
        request = urllib.request.Request(endpoint, method="HEAD")
        try:
            with urllib.request.urlopen(request, timeout=_HTTP_REQUEST_TIMEOUT) as response:
                return 200 <= response.status < 300
        except (OSError, ValueError, http.client.HTTPException):
            return False


class FilePathCheck(Check):
    """Passes once the configured file exists."""

    def run(self, healthiness: Healthiness) -> bool:
        if healthiness.file_path is None:
            return True
        return healthiness.file_path.exists()

    def prepare(self, healthiness: Healthiness) -> None:
        """Remove a stale file left from an earlier run."""
        path = healthiness.file_path
        if path is not None and path.exists():
            path.unlink()


class CommandCheck(Check):
    """Runs the configured command; passes when it exits successfully."""

    def _prepare_cmd(self, command: str) -> None:
        try:
            chunks = shlex.split(command)
        except ValueError as err:
            raise OSError(f"Failed to split command: {command}") from err
        if not chunks:
            raise OSError(f"Failed to get program from command: {command}")
        program = chunks[0]
        if "/" not in program:
            chunks[0] = find_program(program)
        with _parsed_commands_lock:
            _parsed_commands[command] = chunks

    def run(self, healthiness: Healthiness) -> bool:
        command = healthiness.command
        if command is None:
            return True
        with _parsed_commands_lock:
            argv = _parsed_commands.get(command)
        if argv is None:
            return False
        completed = subprocess.run(argv, stdin=subprocess.DEVNULL, capture_output=True)
        return completed.returncode == 0

    def prepare(self, healthiness: Healthiness) -> None:
        """Split the command and resolve its program once."""
        if healthiness.command is None:
            return
        try:
            self._prepare_cmd(healthiness.command)
        except OSError:
            raise
        except Exception as err:
            raise OSError(str(err)) from err


_CHECKS: tuple[Check, ...] = (FilePathCheck(), HttpCheck(), CommandCheck())


def get_checks() -> tuple[Check, ...]:
    """Every available check, in the order they are run."""
    return _CHECKS