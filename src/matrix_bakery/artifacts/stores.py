"""Publication channels backed by local directories.

``LocalArtifactStore`` keeps one entry per ``(qualifier, name)`` for the
lifetime of a run. ``LocalPagesStore`` holds a single current version per
name and overwrites it on every publish.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
import uuid
from pathlib import Path
from typing import Protocol

from matrix_bakery.utils.errors import BakeryError, Err, PublicationError

logger = logging.getLogger(__name__)


class ArtifactStore(Protocol):
    def publish(self, qualifier: str, name: str, path: Path) -> str:
        ...


class PagesStore(Protocol):
    def publish(self, name: str, path: Path) -> str:
        ...


def _temp_sibling(dest: Path) -> Path:
    return dest.with_name(f".{dest.name}.{uuid.uuid4().hex[:8]}.tmp")


def atomic_copy(source: Path, dest: Path) -> None:
    """Copy a file or directory next to ``dest`` and rename it into place."""

    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp = _temp_sibling(dest)
    try:
        if source.is_dir():
            shutil.copytree(source, tmp)
        else:
            shutil.copy2(source, tmp)
        # os.replace cannot overwrite a directory, nor a file with a directory.
        if dest.is_dir():
            shutil.rmtree(dest)
        elif source.is_dir() and dest.exists():
            dest.unlink()
        os.replace(tmp, dest)
    except OSError as exc:
        if tmp.is_dir():
            shutil.rmtree(tmp, ignore_errors=True)
        elif tmp.exists():
            tmp.unlink()
        raise BakeryError(
            Err.IO_ERROR,
            ctx={"reason": "atomic copy failed", "src": str(source), "dest": str(dest)},
            cause=exc,
        ) from exc


class LocalArtifactStore:
    """Generic artifact channel: ``<root>/<qualifier>-<name>/<name>``."""

    def __init__(self, root: Path | str):
        self.root = Path(root)
        self._lock = threading.Lock()
        self._published: dict[str, Path] = {}

    def artifact_name(self, qualifier: str, name: str) -> str:
        return f"{qualifier}-{name}" if qualifier else name

    def publish(self, qualifier: str, name: str, path: Path) -> str:
        artifact = self.artifact_name(qualifier, name)
        source = Path(path)
        if not source.exists():
            raise PublicationError(
                ctx={"reason": "publication source missing", "artifact": artifact, "src": str(source)}
            )
        with self._lock:
            if artifact in self._published:
                raise PublicationError(
                    ctx={"reason": "artifact already published in this run", "artifact": artifact}
                )
            # Reserve the name before copying so concurrent publishers fail fast.
            self._published[artifact] = source
        dest = self.root / artifact / name
        try:
            atomic_copy(source, dest)
        except BakeryError as exc:
            with self._lock:
                self._published.pop(artifact, None)
            raise PublicationError(
                ctx={"reason": "artifact write failed", "artifact": artifact}, cause=exc
            ) from exc
        logger.info("published artifact %s", artifact)
        return artifact

    @property
    def published(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._published)


class LocalPagesStore:
    """Site channel: ``<root>/<name>`` replaced on each publish."""

    def __init__(self, root: Path | str):
        self.root = Path(root)
        self._lock = threading.Lock()

    def publish(self, name: str, path: Path) -> str:
        source = Path(path)
        if not source.exists():
            raise PublicationError(
                ctx={"reason": "publication source missing", "site": name, "src": str(source)}
            )
        with self._lock:
            try:
                atomic_copy(source, self.root / name)
            except BakeryError as exc:
                raise PublicationError(
                    ctx={"reason": "site write failed", "site": name}, cause=exc
                ) from exc
        logger.info("published site content %s", name)
        return name


__all__ = [
    "ArtifactStore",
    "LocalArtifactStore",
    "LocalPagesStore",
    "PagesStore",
    "atomic_copy",
]
