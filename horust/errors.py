"""Errors reported while validating service definitions."""

from __future__ import annotations

from typing import Iterable, Iterator


class ValidationError(Exception):
    """A single problem found in the service definitions."""

    def _key(self) -> tuple:
        return ()

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash((type(self), self._key()))


class MissingDependency(ValidationError):
    """A service should start after another one that does not exist."""

    def __init__(self, before: str, after: str) -> None:
        self.before = before
        self.after = after
        super().__init__(
            f"Service '{before}', should start after '{after}', "
            "but there is no service with such name."
        )

    def _key(self) -> tuple:
        return (self.before, self.after)


class CommandEmpty(ValidationError):
    """A service has a command that is empty."""

    def __init__(self, service: str) -> None:
        self.service = service
        super().__init__(f"Command is defined, but it is empty for service: {service}")

    def _key(self) -> tuple:
        return (self.service,)


class ValidationErrors(Exception):
    """All the problems found while validating the service definitions."""

    def __init__(self, errors: Iterable[ValidationError]) -> None:
        self.errors = list(errors)
        listing = "\n".join(f"* {error}" for error in self.errors)
        super().__init__(f"Found following errors during validation phase: {listing}")

    def __iter__(self) -> Iterator[ValidationError]:
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)