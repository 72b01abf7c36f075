from __future__ import annotations

import json
from functools import wraps
from typing import Any, Mapping

from dagster import Failure, MetadataValue, get_dagster_logger

from matrix_bakery.utils.errors import BakeryError


__all__ = ["error_metadata", "with_asset_error_boundary"]


def error_metadata(err: BakeryError) -> dict[str, MetadataValue]:
    """Dagster metadata for a bakery error: code, reason, job identity, context."""

    metadata: dict[str, MetadataValue] = {
        "error_code": MetadataValue.text(err.code.name),
        "error_reason": MetadataValue.text(err.reason),
    }
    ctx: Mapping[str, Any] = err.ctx or {}
    if "identity" in ctx:
        metadata["job_identity"] = MetadataValue.text(str(ctx["identity"]))
    if ctx:
        try:
            json.dumps(dict(ctx))
        except TypeError:
            metadata["error_ctx_repr"] = MetadataValue.text(repr(dict(ctx)))
        else:
            metadata["error_ctx"] = MetadataValue.json(dict(ctx))
    return metadata


def with_asset_error_boundary(stage: str):
    """Re-raise bakery errors from an asset as ``dagster.Failure``.

    The wrapper keeps the asset's signature (functools.wraps) so Dagster
    still binds context, inputs and resources by name. Errors that are not
    bakery errors propagate unchanged.
    """

    def deco(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except BakeryError as err:
                description = f"[{stage}] {err.code.name}: {err.reason}"
                get_dagster_logger().error(description)
                raise Failure(description=description, metadata=error_metadata(err)) from err

        return wrapper

    return deco
