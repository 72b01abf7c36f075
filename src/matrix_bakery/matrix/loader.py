"""Config loader for bake matrices."""

from __future__ import annotations

import json
from collections import OrderedDict
from pathlib import Path
from typing import Any, Mapping

import yaml

from matrix_bakery.artifacts.spec import parse_artifact_map
from matrix_bakery.config.settings import default_dimension_values
from matrix_bakery.constants import NON_IDENTITY_DIMENSIONS, TARGET_DIMENSION
from matrix_bakery.matrix.bake_spec import BakeSpec, StageSpec
from matrix_bakery.matrix.models import Dimension, DimensionRegistry, OverrideRule
from matrix_bakery.types import DIMENSIONS, RuleKind
from matrix_bakery.utils.errors import ConfigurationError

_TOP_LEVEL_KEYS = {
    "dimensions",
    "excludes",
    "includes",
    "artifacts",
    "fail_fast",
    "artifacts_mandatory",
    "allow_unconditional",
    "max_workers",
    "stages",
}
_STAGE_KEYS = {
    "name",
    "targets",
    "dimensions",
    "requires",
    "needs",
    "excludes",
    "includes",
    "artifacts",
    "fail_fast",
}


def _load_mapping(data: Any, *, path: Path) -> Mapping[str, Any]:
    if isinstance(data, Mapping):
        return data
    raise ConfigurationError(ctx={"path": str(path), "reason": "top-level must be mapping"})


def _parse_file(path: Path) -> Mapping[str, Any]:
    suffix = path.suffix.lower()
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(
            ctx={"path": str(path), "reason": "config unreadable"}, cause=exc
        ) from exc
    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw)
            return _load_mapping(data or {}, path=path)
        if suffix == ".json":
            data = json.loads(raw)
            return _load_mapping(data, path=path)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(
            ctx={"path": str(path), "reason": "config is not valid YAML/JSON"}, cause=exc
        ) from exc
    raise ConfigurationError(ctx={"path": str(path), "reason": "unsupported config format"})


def load_spec(path: Path | str, *, environ: Mapping[str, str] | None = None) -> BakeSpec:
    """Load a config file into a :class:`BakeSpec`."""

    spec_path = Path(path)
    if spec_path.is_dir():
        spec_path = spec_path / "bake.yaml"
    data = _parse_file(spec_path)
    return parse_spec_mapping(data, source=spec_path, base_dir=spec_path.parent, environ=environ)


def parse_spec_mapping(
    data: Mapping[str, Any],
    *,
    source: Path | None = None,
    base_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BakeSpec:
    config_path = str(source) if source is not None else "<mapping>"
    root_dir = base_dir if base_dir is not None else Path(".")

    unknown = sorted(set(data) - _TOP_LEVEL_KEYS)
    if unknown:
        raise ConfigurationError(
            ctx={"path": config_path, "reason": "unknown config keys", "keys": tuple(unknown)}
        )

    registry = _parse_dimensions(
        data.get("dimensions", {}),
        config_path=config_path,
        root_dir=root_dir,
        environ=environ,
    )

    stages_section = data.get("stages", [])
    if not isinstance(stages_section, list):
        raise ConfigurationError(ctx={"path": config_path, "reason": "stages must be list"})
    stages = tuple(
        _parse_stage(entry, idx, config_path=config_path, root_dir=root_dir)
        for idx, entry in enumerate(stages_section)
    )

    return BakeSpec(
        registry=registry,
        excludes=_parse_rules(data.get("excludes"), "exclude", config_path=config_path, root_dir=root_dir),
        includes=_parse_rules(data.get("includes"), "include", config_path=config_path, root_dir=root_dir),
        artifacts=parse_artifact_map(data.get("artifacts")),
        fail_fast=_parse_bool(data, "fail_fast", False, config_path=config_path),
        artifacts_mandatory=_parse_bool(data, "artifacts_mandatory", False, config_path=config_path),
        allow_unconditional=_parse_bool(data, "allow_unconditional", False, config_path=config_path),
        max_workers=data.get("max_workers", 4),
        stages=stages,
    )


def _parse_bool(data: Mapping[str, Any], key: str, default: bool, *, config_path: str) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError(ctx={"path": config_path, "reason": f"{key} must be boolean"})
    return value


def _parse_dimensions(
    section: Any,
    *,
    config_path: str,
    root_dir: Path,
    environ: Mapping[str, str] | None,
) -> DimensionRegistry:
    if section is None:
        section = {}
    if not isinstance(section, Mapping):
        raise ConfigurationError(ctx={"path": config_path, "reason": "dimensions must be mapping"})

    declared: OrderedDict[str, tuple[str, ...]] = OrderedDict()
    for name, payload in section.items():
        declared[name] = tuple(_parse_values(name, payload, config_path=config_path, root_dir=root_dir))

    # Canonical axes first in canonical order, then custom axes as declared.
    ordered: OrderedDict[str, tuple[str, ...]] = OrderedDict()
    for name in DIMENSIONS:
        if name in declared:
            ordered[name] = declared[name]
            continue
        defaults = default_dimension_values(name, environ=environ)
        if defaults is not None:
            ordered[name] = defaults
        elif name == TARGET_DIMENSION:
            # Stages supply targets; without them the run is disabled.
            ordered[name] = ()
    for name, values in declared.items():
        if name not in ordered:
            ordered[name] = values

    return DimensionRegistry(
        tuple(
            Dimension(name=name, values=values, identity=name not in NON_IDENTITY_DIMENSIONS)
            for name, values in ordered.items()
        )
    )


def _parse_values(name: Any, payload: Any, *, config_path: str, root_dir: Path) -> list[str]:
    if not isinstance(name, str) or not name:
        raise ConfigurationError(ctx={"path": config_path, "reason": "dimension name must be string"})
    if isinstance(payload, str) and payload.startswith("@file:"):
        values = _load_inline_payload((root_dir / payload.removeprefix("@file:")).resolve())
    else:
        values = payload
    if not isinstance(values, list):
        raise ConfigurationError(
            ctx={
                "path": config_path,
                "dimension": name,
                "reason": "dimension must be list or '@file:' string",
            }
        )
    if not all(isinstance(v, str) for v in values):
        raise ConfigurationError(
            ctx={"path": config_path, "dimension": name, "reason": "dimension values must be strings"}
        )
    return values


def _resolve_file_reference(value: Any, *, root_dir: Path) -> Any:
    if isinstance(value, str) and value.startswith("@file:"):
        return _load_inline_payload((root_dir / value.removeprefix("@file:")).resolve())
    return value


def _load_inline_payload(path: Path) -> Any:
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(ctx={"path": str(path), "reason": "@file unreadable"}, cause=exc) from exc
    if suffix in {".yaml", ".yml"}:
        return yaml.safe_load(text) or []
    if suffix == ".json":
        return json.loads(text)
    if suffix == ".txt":
        return [line.strip() for line in text.splitlines() if line.strip()]
    raise ConfigurationError(ctx={"reason": "unsupported @file extension", "path": str(path)})


def _parse_rules(
    section: Any,
    kind: RuleKind,
    *,
    config_path: str,
    root_dir: Path,
) -> tuple[OverrideRule, ...]:
    resolved = _resolve_file_reference(section, root_dir=root_dir)
    if resolved in (None, []):
        return ()
    if not isinstance(resolved, list):
        raise ConfigurationError(ctx={"path": config_path, "reason": f"{kind}s must be list"})
    return tuple(OverrideRule.from_mapping(kind, entry, index=idx) for idx, entry in enumerate(resolved))


def _parse_stage(entry: Any, idx: int, *, config_path: str, root_dir: Path) -> StageSpec:
    if not isinstance(entry, Mapping):
        raise ConfigurationError(ctx={"path": config_path, "index": idx, "reason": "stage must be mapping"})
    unknown = sorted(set(entry) - _STAGE_KEYS)
    if unknown:
        raise ConfigurationError(
            ctx={"path": config_path, "index": idx, "reason": "unknown stage keys", "keys": tuple(unknown)}
        )
    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigurationError(ctx={"path": config_path, "index": idx, "reason": "stage name required"})

    targets = entry.get("targets")
    if targets is not None:
        targets = tuple(_parse_values(TARGET_DIMENSION, targets, config_path=config_path, root_dir=root_dir))

    dims_section = entry.get("dimensions") or {}
    if not isinstance(dims_section, Mapping):
        raise ConfigurationError(ctx={"path": config_path, "stage": name, "reason": "stage dimensions must be mapping"})
    dimensions = {
        dim: tuple(_parse_values(dim, payload, config_path=config_path, root_dir=root_dir))
        for dim, payload in dims_section.items()
    }

    requires = entry.get("requires") or {}
    if not isinstance(requires, Mapping) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in requires.items()
    ):
        raise ConfigurationError(
            ctx={"path": config_path, "stage": name, "reason": "stage requires must map strings to strings"}
        )

    needs = entry.get("needs") or []
    if not isinstance(needs, list) or not all(isinstance(n, str) for n in needs):
        raise ConfigurationError(ctx={"path": config_path, "stage": name, "reason": "stage needs must be list"})

    fail_fast = entry.get("fail_fast")
    if fail_fast is not None and not isinstance(fail_fast, bool):
        raise ConfigurationError(ctx={"path": config_path, "stage": name, "reason": "fail_fast must be boolean"})

    return StageSpec(
        name=name,
        targets=targets,
        dimensions=dimensions,
        requires=dict(requires),
        needs=tuple(needs),
        excludes=_parse_rules(entry.get("excludes"), "exclude", config_path=config_path, root_dir=root_dir),
        includes=_parse_rules(entry.get("includes"), "include", config_path=config_path, root_dir=root_dir),
        artifacts=parse_artifact_map(entry.get("artifacts")),
        fail_fast=fail_fast,
    )


__all__ = ["load_spec", "parse_spec_mapping"]
