"""Pytest fixtures for end-to-end and Dagster integration tests."""

import os
from pathlib import Path

import pytest
import yaml
from dagster import DagsterInstance


# Ensure DAGSTER_HOME points to a temp path for all tests
@pytest.fixture(scope="session", autouse=True)
def _dagster_home_env(tmp_path_factory):
    tmp_home = tmp_path_factory.mktemp("dagster_home")
    os.environ["DAGSTER_HOME"] = str(tmp_home)
    return str(tmp_home)


@pytest.fixture
def ephemeral_instance():
    """Provide a fresh Dagster instance for each test."""
    return DagsterInstance.ephemeral()


@pytest.fixture
def write_config(tmp_path: Path):
    """Write a bake config mapping to ``<tmp>/config/bake.yaml`` and return its path."""

    def _write(payload: dict) -> Path:
        config_dir = tmp_path / "config"
        config_dir.mkdir(exist_ok=True)
        path = config_dir / "bake.yaml"
        path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return path

    return _write
