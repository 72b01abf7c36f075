"""
Ensure `src` is on sys.path for local test runs without requiring installation,
and provide in-memory build/extraction backends shared by every test suite.
"""
from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.resolve()
SRC = ROOT / "src"
if SRC.exists():
    sys.path.insert(0, str(SRC))

from matrix_bakery.dispatch.backends import move_local_file  # noqa: E402
from matrix_bakery.dispatch.results import BuildHandle  # noqa: E402
from matrix_bakery.utils.errors import BuildFailure, ExtractionError  # noqa: E402


class FakeBakeBackend:
    """Records builds and serves image contents from dictionaries.

    ``image_files`` maps a target to ``{path: bytes}`` inside the built image;
    ``local_files`` maps a target to files written into ``workdir/<identity>`` by the build.
    Builds fail for identities or targets listed in ``fail``.
    """

    def __init__(self, workdir: Path, *, fail=(), image_files=None, local_files=None, on_build=None):
        self.workdir = Path(workdir)
        self.fail = set(fail)
        self.image_files = image_files or {}
        self.local_files = local_files or {}
        self.on_build = on_build
        self.images: dict[str, dict[str, bytes]] = {}
        self.started: list[str] = []
        self._lock = threading.Lock()

    def run_build(self, cell, identity, cancel):
        with self._lock:
            self.started.append(identity)
        if self.on_build is not None:
            self.on_build(cell, identity, cancel)
        target = cell.get("target")
        if identity in self.fail or target in self.fail:
            raise BuildFailure(ctx={"reason": f"bake of {target} failed", "identity": identity})
        with self._lock:
            self.images[identity] = dict(self.image_files.get(target, {}))
        outdir = self.workdir / identity
        for name, data in self.local_files.get(target, {}).items():
            path = outdir / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        return BuildHandle(identity=identity, image=identity, workdir=outdir)

    def copy_from_image(self, handle, src, dest):
        files = self.images.get(handle.image, {})
        if src not in files:
            raise ExtractionError(ctx={"reason": "source path missing in image", "src": src})
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(files[src])

    def save_image(self, handle, dest):
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text("image:" + handle.image, encoding="utf-8")

    def move_local(self, handle, src, dest):
        move_local_file(handle.workdir, src, dest)


@pytest.fixture
def make_backend(tmp_path):
    """Factory for :class:`FakeBakeBackend` rooted in a per-test workdir."""

    def _make(**kwargs):
        workdir = tmp_path / "workdir"
        workdir.mkdir(exist_ok=True)
        return FakeBakeBackend(workdir, **kwargs)

    return _make
