from __future__ import annotations

import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

from dagster import ConfigurableResource
from pydantic import PrivateAttr

from matrix_bakery.config.settings import CONFIG_PATH_ENV
from matrix_bakery.matrix import BakeSpec, load_spec, parse_spec_mapping
from matrix_bakery.utils.errors import ConfigurationError


class BakeConfigResource(ConfigurableResource):
    """Loads and caches bake configs for the bake assets."""

    config_path: str | None = None
    cache_specs: bool = True

    _spec_cache: dict[str, BakeSpec] = PrivateAttr(default_factory=dict)

    def _resolve_path(self, path: str | Path | None) -> Path:
        candidate = path or self.config_path or os.environ.get(CONFIG_PATH_ENV)
        if not candidate:
            raise ConfigurationError(
                ctx={"reason": "no bake config configured", "env": CONFIG_PATH_ENV}
            )
        resolved = Path(candidate)
        if resolved.is_dir():
            resolved = resolved / "bake.yaml"
        return resolved

    def _cache_key(self, path: Path) -> str:
        try:
            return str(path.resolve())
        except OSError:
            return str(path)

    def get_spec(self, path: str | Path | None = None) -> BakeSpec:
        spec_path = self._resolve_path(path)
        key = self._cache_key(spec_path)
        if self.cache_specs and key in self._spec_cache:
            return self._spec_cache[key]

        spec = load_spec(spec_path)
        if self.cache_specs:
            self._spec_cache[key] = spec
        return spec

    def parse_mapping(
        self,
        mapping: Mapping[str, Any],
        *,
        source: str | Path | None = None,
        base_dir: str | Path | None = None,
    ) -> BakeSpec:
        source_path = Path(source) if source is not None else None
        resolved_base = Path(base_dir) if base_dir is not None else (
            source_path.parent if source_path is not None else Path(".")
        )
        spec = parse_spec_mapping(deepcopy(dict(mapping)), source=source_path, base_dir=resolved_base)
        if self.cache_specs and source_path is not None:
            self._spec_cache[self._cache_key(source_path)] = spec
        return spec


__all__ = ["BakeConfigResource"]
