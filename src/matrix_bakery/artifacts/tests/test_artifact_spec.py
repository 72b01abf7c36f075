from __future__ import annotations

import pytest

from matrix_bakery.artifacts.spec import ArtifactSpec, ExtractionStrategy, parse_artifact_map
from matrix_bakery.utils.errors import ConfigurationError


def test_dst_only_defaults_to_inner_file_from_dst() -> None:
    spec = ArtifactSpec.from_mapping("app", {"dst": "out.bin"})

    assert spec.strategy is ExtractionStrategy.INNER_FILE
    assert spec.source_path == "out.bin"
    assert spec.pages is False


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"dst": "img.tar", "img": True}, ExtractionStrategy.WHOLE_IMAGE),
        ({"dst": "img.tar", "img": "yes"}, ExtractionStrategy.WHOLE_IMAGE),
        ({"dst": "img.tar", "img": None}, ExtractionStrategy.INNER_FILE),
        ({"dst": "log", "runner": True}, ExtractionStrategy.RUNNER_LOCAL),
        ({"dst": "log", "runner": "true"}, ExtractionStrategy.INNER_FILE),
        ({"dst": "log", "strategy": "runner_local"}, ExtractionStrategy.RUNNER_LOCAL),
        ({"dst": "log", "strategy": "whole_image", "img": True}, ExtractionStrategy.WHOLE_IMAGE),
    ],
)
def test_legacy_flags_map_to_single_strategy(payload, expected) -> None:
    assert ArtifactSpec.from_mapping("t", payload).strategy is expected


def test_conflicting_flags_are_rejected() -> None:
    with pytest.raises(ConfigurationError) as err:
        ArtifactSpec.from_mapping("t", {"dst": "x", "img": True, "runner": True})
    assert err.value.ctx["strategies"] == ("whole_image", "runner_local")


def test_whole_image_with_pages_is_allowed() -> None:
    spec = ArtifactSpec.from_mapping("book", {"dst": "book.tar", "img": True, "pages": True})

    assert spec.strategy is ExtractionStrategy.WHOLE_IMAGE
    assert spec.pages is True


@pytest.mark.parametrize(
    "payload",
    [
        {"src": "only-src"},
        {"dst": "a/b"},
        {"dst": ""},
        {"dst": "x", "pages": "yes"},
        {"dst": "x", "strategy": "zip"},
        {"dst": "x", "unknown": 1},
    ],
)
def test_invalid_artifact_entries(payload) -> None:
    with pytest.raises(ConfigurationError):
        ArtifactSpec.from_mapping("t", payload)


def test_parse_artifact_map_keys_by_target() -> None:
    specs = parse_artifact_map({"app": {"dst": "app"}, "book": {"dst": "book", "pages": True}})

    assert sorted(specs) == ["app", "book"]
    assert parse_artifact_map(None) == {}
