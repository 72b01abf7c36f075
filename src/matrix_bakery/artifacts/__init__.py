"""Artifact specs, routing and publication stores.

Import from the concrete modules, for example:

    from matrix_bakery.artifacts.router import ArtifactRouter

The matrix loader imports :mod:`matrix_bakery.artifacts.spec` directly, so this
package init stays free of re-exports.
"""
