"""
Boundary to the external git and hg executables.

The engine never speaks the version-control wire protocols itself; it runs
`git`/`hg` as child processes, captures their output and kills them when the
shared context is cancelled.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

from srht_client.context import OperationCancelled, OperationContext

from .types import VCSCommandError

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5


def run_vcs(
    args: List[str],
    ctx: OperationContext | None = None,
    cwd: Optional[Path] = None,
) -> str:
    """
    Run a git/hg command to completion.

    Args:
        args: Command line, e.g. ["git", "clone", "--mirror", url, dest]
        ctx: Cancellation context; the process is killed when cancelled
        cwd: Working directory

    Returns:
        Captured stdout

    Raises:
        VCSCommandError: Non-zero exit status or missing executable
        OperationCancelled: Context cancelled while the command ran
    """
    logger.debug(f"Running {' '.join(args)}")
    try:
        proc = subprocess.Popen(
            args,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except FileNotFoundError as e:
        raise VCSCommandError(args, 127, f"{args[0]}: command not found") from e

    with proc:
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if ctx is not None and ctx.cancelled:
                    proc.kill()
                    proc.communicate()
                    raise OperationCancelled(f"{args[0]} {args[1]} cancelled")

    if proc.returncode != 0:
        raise VCSCommandError(args, proc.returncode, stderr or "")
    return stdout or ""


def clone_into(
    args: List[str],
    dest: Path,
    ctx: OperationContext | None = None,
) -> None:
    """
    Run a clone command that creates `dest`, removing whatever it left
    behind if it fails or is cancelled.
    """
    try:
        run_vcs(args, ctx)
    except BaseException:
        if dest.exists():
            logger.debug(f"Removing incomplete clone {dest}")
            shutil.rmtree(dest, ignore_errors=True)
        raise


def git_mirror_clone(url: str, dest: Path, ctx: OperationContext | None = None) -> None:
    clone_into(["git", "clone", "--mirror", url, str(dest)], dest, ctx)


def git_mirror_push(repo: Path, url: str, ctx: OperationContext | None = None) -> None:
    run_vcs(["git", "-C", str(repo), "push", "--mirror", url], ctx)


def hg_clone(url: str, dest: Path, ctx: OperationContext | None = None) -> None:
    clone_into(["hg", "clone", "-U", url, str(dest)], dest, ctx)


def hg_push(repo: Path, url: str, ctx: OperationContext | None = None) -> None:
    try:
        run_vcs(["hg", "push", "-R", str(repo), url], ctx)
    except VCSCommandError as e:
        # hg exits 1 when there was nothing to push
        if e.returncode != 1:
            raise
        logger.debug(f"hg push: no changes for {url}")
