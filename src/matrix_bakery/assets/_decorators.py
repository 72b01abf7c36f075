from __future__ import annotations

import dagster as dg

from ._error_boundary import with_asset_error_boundary


def bake_asset(*, stage: str = "bake", group_name: str = "bake", **asset_kwargs):
    """``@dagster.asset`` in the bake group, behind the bakery error boundary.

    Remaining kwargs (partitions_def, required_resource_keys, deps, ...) pass
    straight through to ``dagster.asset``.
    """

    def deco(fn):
        return dg.asset(group_name=group_name, **asset_kwargs)(with_asset_error_boundary(stage)(fn))

    return deco
