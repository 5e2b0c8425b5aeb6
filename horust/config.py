"""Supervisor-wide configuration."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path


@dataclass
class HorustConfig:
    """Options of the supervisor itself."""

    #: Exit with an unsuccessful code if any process ends in FinishedFailed state.
    unsuccessful_exit_finished_failed: bool = False

    @classmethod
    def _from_toml(cls, content: str) -> HorustConfig:
        data = tomllib.loads(content)
        key = "unsuccessful_exit_finished_failed"
        if key not in data:
            raise ValueError(f"missing field `{key}`")
        value = data[key]
        if not isinstance(value, bool):
            raise ValueError(f"invalid type for `{key}`: expected a boolean, got {value!r}")
        return cls(unsuccessful_exit_finished_failed=value)

    @classmethod
    def load_and_merge(
        cls, cmd_line: HorustConfig, path: str | os.PathLike[str]
    ) -> HorustConfig:
        """Load the config file at ``path`` and merge it with the command-line options.

        A missing file counts as the default configuration. Options enabled on
        the command line stay enabled.
        """
        path = Path(path)
        if path.exists():
            config_file = cls._from_toml(path.read_text())
        else:
            config_file = cls()
        return cls(
            unsuccessful_exit_finished_failed=cmd_line.unsuccessful_exit_finished_failed
            or config_file.unsuccessful_exit_finished_failed
        )