"""External build and extraction collaborators.

The orchestrator only talks to the two protocols below. ``ShellBakeBackend``
implements both with a bake command plus the docker CLI, exporting every
dimension as an environment variable the way a CI bake step does.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Mapping, Protocol, Sequence

from matrix_bakery.constants import BUILDS_DIRNAME, DEFAULT_BUILD_COMMAND
from matrix_bakery.dispatch.results import BuildHandle
from matrix_bakery.matrix.models import MatrixCell
from matrix_bakery.utils.errors import BuildFailure, ExtractionError

logger = logging.getLogger(__name__)

# Max characters of build output kept in failure context.
_LOG_TAIL = 2000

# Seconds a signalled build gets to exit before SIGKILL.
_STOP_GRACE = 5.0


class BuildBackend(Protocol):
    def run_build(self, cell: MatrixCell, identity: str, cancel: threading.Event) -> BuildHandle:
        """Build one cell; raise :class:`BuildFailure` on failure."""
        ...


class ExtractionBackend(Protocol):
    def copy_from_image(self, handle: BuildHandle, src: str, dest: Path) -> None:
        ...

    def save_image(self, handle: BuildHandle, dest: Path) -> None:
        ...

    def move_local(self, handle: BuildHandle, src: str, dest: Path) -> None:
        ...


def _run(cmd: Sequence[str]) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(
            list(cmd),
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise ExtractionError(
            ctx={"reason": "extraction command unavailable", "command": list(cmd)[:2], "error": str(exc)},
            cause=exc,
        ) from exc


def _killpg(proc: subprocess.Popen, sig: int) -> None:
    try:
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        pass


def _stop(proc: subprocess.Popen, sig: int, grace: float = _STOP_GRACE) -> None:
    """Signal the build's whole process group and reap it.

    A group still alive ``grace`` seconds after ``sig`` is killed outright.
    """
    _killpg(proc, sig)
    if sig == signal.SIGKILL:
        proc.communicate()
        return
    try:
        proc.communicate(timeout=grace)
    except subprocess.TimeoutExpired:
        logger.warning("build %s ignored signal %s; killing", proc.pid, sig)
        _killpg(proc, signal.SIGKILL)
        proc.communicate()


def move_local_file(workdir: Path | None, src: str, dest: Path) -> None:
    """Move a plain local file (or directory) into ``dest``."""

    source = Path(src)
    if not source.is_absolute() and workdir is not None:
        source = workdir / source
    if not source.exists():
        raise ExtractionError(
            ctx={"reason": "runner-local source missing", "src": str(source)}
        )
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        shutil.move(str(source), str(dest))
    except OSError as exc:
        raise ExtractionError(
            ctx={"reason": "runner-local move failed", "src": str(source), "dest": str(dest)},
            cause=exc,
        ) from exc


class ShellBakeBackend:
    """Run a bake command per cell and extract through the docker CLI.

    Each build gets its own output directory ``<build_root>/<identity>``,
    cleaned before the build and exported to the command as ``outdir``.
    Relative runner-local artifact sources resolve against it, so concurrent
    builds never read each other's files.
    """

    def __init__(
        self,
        *,
        command: str = DEFAULT_BUILD_COMMAND,
        workdir: Path | str = ".",
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        poll_interval: float = 1.0,
        docker: str = "docker",
        build_root: Path | str | None = None,
        stop_grace: float = _STOP_GRACE,
    ):
        self.command = command
        self.workdir = Path(workdir)
        self.build_root = Path(build_root) if build_root is not None else self.workdir / BUILDS_DIRNAME
        self.stop_grace = stop_grace
        self.env = dict(env or {})
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.docker = docker

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build_dir(self, identity: str) -> Path:
        if not identity or "/" in identity or identity in {".", ".."}:
            raise BuildFailure(ctx={"reason": "identity unusable as a directory name", "identity": identity})
        return self.build_root / identity

    def _prepare_build_dir(self, identity: str) -> Path:
        outdir = self.build_dir(identity)
        try:
            if outdir.exists():
                shutil.rmtree(outdir)
            outdir.mkdir(parents=True)
        except OSError as exc:
            raise BuildFailure(
                ctx={"reason": "build directory unavailable", "identity": identity, "outdir": str(outdir)},
                cause=exc,
            ) from exc
        return outdir.resolve()

    def build_env(self, cell: MatrixCell, identity: str, outdir: Path | None = None) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self.env)
        env.update(cell.as_dict())
        env["iid"] = identity
        if outdir is not None:
            env["outdir"] = str(outdir)
        return env

    def render_command(self, cell: MatrixCell, identity: str, outdir: Path | None = None) -> str:
        return self.command.format(iid=identity, outdir=outdir or "", **cell.as_dict())

    def run_build(self, cell: MatrixCell, identity: str, cancel: threading.Event) -> BuildHandle:
        outdir = self._prepare_build_dir(identity)
        cmd = self.render_command(cell, identity, outdir)
        logger.info("bake %s: %s", identity, cmd)
        try:
            proc = subprocess.Popen(
                cmd,
                shell=True,
                cwd=str(self.workdir),
                env=self.build_env(cell, identity, outdir),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                start_new_session=True,
            )
        except OSError as exc:
            raise BuildFailure(
                ctx={"reason": "bake command could not start", "identity": identity, "error": str(exc)},
                cause=exc,
            ) from exc
        started = time.monotonic()
        while True:
            try:
                output, _ = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel.is_set():
                    _stop(proc, signal.SIGTERM, self.stop_grace)
                    raise BuildFailure(ctx={"reason": "cancelled", "identity": identity})
                if self.timeout is not None and time.monotonic() - started > self.timeout:
                    _stop(proc, signal.SIGKILL)
                    raise BuildFailure(
                        ctx={"reason": f"timed out after {self.timeout}s", "identity": identity}
                    )

        if proc.returncode != 0:
            raise BuildFailure(
                ctx={
                    "reason": f"bake exited with status {proc.returncode}",
                    "identity": identity,
                    "log_tail": (output or "")[-_LOG_TAIL:],
                }
            )
        return BuildHandle(identity=identity, image=identity, workdir=outdir)

    # ------------------------------------------------------------------
    # Extraction primitives
    # ------------------------------------------------------------------

    def copy_from_image(self, handle: BuildHandle, src: str, dest: Path) -> None:
        image = handle.image or handle.identity
        created = _run([self.docker, "create", image, "/"])
        if created.returncode != 0:
            raise ExtractionError(
                ctx={"reason": "container create failed", "image": image, "stderr": created.stderr.strip()}
            )
        cid = created.stdout.strip()
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            copied = _run([self.docker, "cp", f"{cid}:{src}", str(dest)])
            if copied.returncode != 0:
                raise ExtractionError(
                    ctx={
                        "reason": "source path missing in image",
                        "image": image,
                        "src": src,
                        "stderr": copied.stderr.strip(),
                    }
                )
        finally:
            removed = _run([self.docker, "rm", cid])
            if removed.returncode != 0:
                logger.warning("failed to remove container %s: %s", cid, removed.stderr.strip())

    def save_image(self, handle: BuildHandle, dest: Path) -> None:
        image = handle.image or handle.identity
        dest.parent.mkdir(parents=True, exist_ok=True)
        saved = _run([self.docker, "save", "-o", str(dest), image])
        if saved.returncode != 0:
            raise ExtractionError(
                ctx={"reason": "image save failed", "image": image, "stderr": saved.stderr.strip()}
            )

    def move_local(self, handle: BuildHandle, src: str, dest: Path) -> None:
        move_local_file(handle.workdir or self.workdir, src, dest)


__all__ = [
    "BuildBackend",
    "ExtractionBackend",
    "ShellBakeBackend",
    "move_local_file",
]
