from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any


class Err(Enum):
    INVALID_CONFIG = auto()
    IDENTITY_COLLISION = auto()
    BUILD_FAILED = auto()
    EXTRACTION_FAILED = auto()
    PUBLICATION_FAILED = auto()
    IO_ERROR = auto()


@dataclass(eq=False)
class BakeryError(Exception):
    code: Err
    ctx: dict[str, Any] | None = None
    cause: Exception | None = None

    def __post_init__(self) -> None:
        if self.ctx is None:
            self.ctx = {}
        if self.cause is not None:
            self.__cause__ = self.cause
        super().__init__(self.code.name)

    @property
    def reason(self) -> str:
        """Short human-readable reason, falling back to the code name."""
        if self.ctx and "reason" in self.ctx:
            return str(self.ctx["reason"])
        return self.code.name

    def __str__(self) -> str:  # pragma: no cover - convenience for logging
        parts = [self.code.name]
        if self.ctx:
            parts.append(str(self.ctx))
        return ": ".join(parts)


@dataclass(eq=False)
class ConfigurationError(BakeryError):
    """Malformed dimensions, rules or artifact specs; fails the run before dispatch."""

    code: Err = Err.INVALID_CONFIG


@dataclass(eq=False)
class CollisionError(BakeryError):
    """Two distinct cells resolve to the same job identity."""

    code: Err = Err.IDENTITY_COLLISION


@dataclass(eq=False)
class BuildFailure(BakeryError):
    code: Err = Err.BUILD_FAILED


@dataclass(eq=False)
class ExtractionError(BakeryError):
    code: Err = Err.EXTRACTION_FAILED


@dataclass(eq=False)
class PublicationError(BakeryError):
    code: Err = Err.PUBLICATION_FAILED


__all__ = [
    "BakeryError",
    "BuildFailure",
    "CollisionError",
    "ConfigurationError",
    "Err",
    "ExtractionError",
    "PublicationError",
]
