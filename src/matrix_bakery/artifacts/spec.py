"""Declarative per-target artifact records."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from matrix_bakery.utils.errors import ConfigurationError


class ExtractionStrategy(str, Enum):
    """Closed set of ways to pull an artifact out of a finished build."""

    INNER_FILE = "inner_file"
    WHOLE_IMAGE = "whole_image"
    RUNNER_LOCAL = "runner_local"


# Boolean flags accepted from mapping data, each selecting one strategy.
_LEGACY_FLAGS = {
    "img": ExtractionStrategy.WHOLE_IMAGE,
    "runner": ExtractionStrategy.RUNNER_LOCAL,
}

_KNOWN_KEYS = {"dst", "src", "strategy", "pages", *_LEGACY_FLAGS}


@dataclass(frozen=True)
class ArtifactSpec:
    dst: str
    src: str | None = None
    strategy: ExtractionStrategy = ExtractionStrategy.INNER_FILE
    pages: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.dst, str) or not self.dst.strip():
            raise ConfigurationError(ctx={"reason": "artifact dst must be non-empty string"})
        if "/" in self.dst or self.dst in {".", ".."}:
            raise ConfigurationError(
                ctx={"reason": "artifact dst must be a plain name", "dst": self.dst}
            )
        if self.src is not None and (not isinstance(self.src, str) or not self.src):
            raise ConfigurationError(
                ctx={"reason": "artifact src must be non-empty string", "dst": self.dst}
            )
        object.__setattr__(self, "strategy", ExtractionStrategy(self.strategy))

    @property
    def source_path(self) -> str:
        """Path the extraction reads from; defaults to the destination name."""
        return self.src or self.dst

    @classmethod
    def from_mapping(cls, target: str, payload: Mapping[str, Any]) -> "ArtifactSpec":
        if not isinstance(payload, Mapping):
            raise ConfigurationError(
                ctx={"reason": "artifact entry must be mapping", "target": target}
            )
        unknown = sorted(set(payload) - _KNOWN_KEYS)
        if unknown:
            raise ConfigurationError(
                ctx={"reason": "unknown artifact keys", "target": target, "keys": tuple(unknown)}
            )
        if "dst" not in payload:
            raise ConfigurationError(ctx={"reason": "artifact dst required", "target": target})

        selected = [strategy for flag, strategy in _LEGACY_FLAGS.items() if _flag_set(flag, payload.get(flag))]
        explicit = payload.get("strategy")
        if explicit is not None:
            try:
                selected.append(ExtractionStrategy(explicit))
            except ValueError as exc:
                raise ConfigurationError(
                    ctx={"reason": "unknown artifact strategy", "target": target, "strategy": explicit},
                    cause=exc,
                ) from exc
        if len(set(selected)) > 1:
            raise ConfigurationError(
                ctx={
                    "reason": "conflicting artifact strategies",
                    "target": target,
                    "strategies": tuple(s.value for s in selected),
                }
            )

        pages = payload.get("pages", False)
        if not isinstance(pages, bool):
            raise ConfigurationError(
                ctx={"reason": "artifact pages must be boolean", "target": target}
            )
        return cls(
            dst=payload["dst"],
            src=payload.get("src"),
            strategy=selected[0] if selected else ExtractionStrategy.INNER_FILE,
            pages=pages,
        )


def _flag_set(flag: str, value: Any) -> bool:
    # `img` needs any non-null, non-false value; `runner` must be exactly true.
    if flag == "runner":
        return value is True
    return value is not None and value is not False


def parse_artifact_map(section: Any) -> dict[str, ArtifactSpec]:
    if section in (None, {}):
        return {}
    if not isinstance(section, Mapping):
        raise ConfigurationError(ctx={"reason": "artifacts must be mapping"})
    specs: dict[str, ArtifactSpec] = {}
    for target, payload in section.items():
        if not isinstance(target, str) or not target:
            raise ConfigurationError(ctx={"reason": "artifact target must be non-empty string"})
        specs[target] = ArtifactSpec.from_mapping(target, payload)
    return specs


__all__ = ["ArtifactSpec", "ExtractionStrategy", "parse_artifact_map"]
