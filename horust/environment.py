"""Environment and user settings of a service's process."""

from __future__ import annotations

import logging
import os
import pwd
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

log = logging.getLogger(__name__)

_HOSTNAME_PATH = Path("/etc/hostname")
_DEFAULT_PATH = (
    "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin:/usr/games:/usr/local/games"
)


def _hostname() -> str:
    localhost = "localhost"
    if _HOSTNAME_PATH.is_file():
        try:
            return _HOSTNAME_PATH.read_text()
        except (OSError, UnicodeDecodeError):
            return localhost
    return os.environ.get("HOSTNAME", localhost)


@dataclass
class Environment:
    """How the environment of a service's process is built."""

    keep_env: bool = False
    re_export: list[str] = field(default_factory=list)
    additional: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Environment:
        """Build from a parsed ``environment`` table with kebab-case keys."""
        keep_env = data.get("keep-env", False)
        if not isinstance(keep_env, bool):
            raise ValueError(f"keep-env: expected a boolean, got {keep_env!r}")
        re_export = data.get("re-export", [])
        if not isinstance(re_export, list) or not all(isinstance(k, str) for k in re_export):
            raise ValueError(f"re-export: expected a list of strings, got {re_export!r}")
        additional = data.get("additional", {})
        if not isinstance(additional, Mapping) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in additional.items()
        ):
            raise ValueError(f"additional: expected a table of strings, got {additional!r}")
        return cls(keep_env=keep_env, re_export=list(re_export), additional=dict(additional))

    def get_environment(self, user_name: str, user_home: str) -> list[str]:
        """``K=V`` entries for the new process.

        Precedence, lowest first: the inherited environment (with ``keep_env``),
        the predefined HOSTNAME, PATH, USER and HOME, re-exported variables,
        and the additional variables.
        """
        initial: dict[str, str] = dict(os.environ) if self.keep_env else {}
        initial.update(
            {
                "HOSTNAME": _hostname(),
                "PATH": os.environ.get("PATH", _DEFAULT_PATH),
                "USER": user_name,
                "HOME": user_home,
            }
        )
        if "TERM" in os.environ:
            initial.setdefault("TERM", os.environ["TERM"])

        for key in self.re_export:
            try:
                initial[key] = os.environ[key]
            except KeyError:
                log.error("Error getting env key: %s, error: environment variable not found ", key)

        merged = {**initial, **self.additional}
        return [f"{key}={value}" for key, value in merged.items()]


@dataclass(frozen=True)
class User:
    """A system user, given either by uid or by name."""

    spec: int | str

    def __post_init__(self) -> None:
        if isinstance(self.spec, bool) or not isinstance(self.spec, (int, str)):
            raise TypeError(f"user must be a uid or a name, got {self.spec!r}")
        if isinstance(self.spec, int) and not 0 <= self.spec < 1 << 32:
            raise ValueError(f"uid out of range: {self.spec}")

    @classmethod
    def current(cls) -> User:
        """The user running this process."""
        return cls(os.getuid())

    def get_uid(self) -> int:
        """Numeric uid; looks the name up in the user database when needed."""
        if isinstance(self.spec, int):
            return self.spec
        try:
            return pwd.getpwnam(self.spec).pw_uid
        except KeyError:
            raise LookupError(f"User `{self.spec}` not found") from None

    def _entry(self) -> pwd.struct_passwd:
        uid = self.get_uid()
        try:
            return pwd.getpwuid(uid)
        except KeyError:
            raise LookupError(f"User `{uid}` not found") from None

    def get_name(self) -> str:
        """Login name of the user."""
        return self._entry().pw_name

    def get_home(self) -> Path:
        """Home directory of the user."""
        return Path(self._entry().pw_dir)