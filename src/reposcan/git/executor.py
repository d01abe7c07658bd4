"""Run git invocations as asynchronous subprocesses.

This is the only place reposcan talks to the external tool. Every call is
bounded by a timeout and an output cap; a non-zero exit becomes
``ProcessExecutionFailure`` and an expired timeout becomes ``ScanTimeout``.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from ..exceptions import ProcessExecutionFailure, ScanTimeout
from ..logging_config import get_logger

logger = get_logger(__name__)

# Maximum output per invocation (50MB) to prevent OOM on huge repos
DEFAULT_MAX_OUTPUT_BYTES = 50 * 1024 * 1024

_READ_CHUNK = 1024 * 1024


@dataclass(frozen=True)
class ProcessResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    truncated: bool = False


class GitExecutor:
    """Execute git commands against a working directory.

    Usage:
        executor = GitExecutor(timeout=30)
        out = await executor.run("/path/to/repo", ["rev-parse", "HEAD"])
    """

    def __init__(
        self,
        git_binary: str = "git",
        timeout: float = 30.0,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ):
        self.git_binary = git_binary
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes
        self.invocations = 0

    async def run(
        self, repo_path: str | Path, args: Sequence[str], timeout: Optional[float] = None
    ) -> str:
        """Run ``git <args>`` in ``repo_path`` and return stdout.

        Raises:
            ProcessExecutionFailure: git could not be started or exited non-zero
            ScanTimeout: the invocation outlived its timeout
        """
        result = await self.execute(repo_path, args, timeout=timeout)
        if result.returncode != 0:
            raise ProcessExecutionFailure(
                f"git {' '.join(args)} failed: {result.stderr.strip() or f'exit {result.returncode}'}",
                context={
                    "repo_path": str(repo_path),
                    "args": list(args),
                    "returncode": result.returncode,
                },
            )
        return result.stdout

    async def execute(
        self, repo_path: str | Path, args: Sequence[str], timeout: Optional[float] = None
    ) -> ProcessResult:
        """Run ``git <args>`` and return the raw result regardless of exit code."""
        limit = self.timeout if timeout is None else timeout
        cmd = [self.git_binary, *args]
        self.invocations += 1

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(repo_path),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=_git_env(),
            )
        except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
            raise ProcessExecutionFailure(
                f"could not start {self.git_binary}: {e}",
                context={"repo_path": str(repo_path), "args": list(args)},
            ) from e

        try:
            stdout, stderr, truncated = await asyncio.wait_for(self._collect(proc), timeout=limit)
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.wait()
            logger.warning("git %s timed out after %.1fs in %s", " ".join(args), limit, repo_path)
            raise ScanTimeout(
                f"git {' '.join(args)} timed out after {limit:.1f}s",
                context={"repo_path": str(repo_path), "args": list(args), "timeout": limit},
            )
        except asyncio.CancelledError:
            # Scan deadline hit further up: never leave the child behind
            _kill(proc)
            raise

        returncode = proc.returncode if proc.returncode is not None else 1
        if truncated:
            # Killed on purpose; keep what was read
            returncode = 0

        return ProcessResult(
            args=tuple(args),
            returncode=returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            truncated=truncated,
        )

    async def _collect(self, proc: asyncio.subprocess.Process) -> tuple[bytes, bytes, bool]:
        """Stream stdout with a size limit, then drain stderr and reap the child."""
        assert proc.stdout is not None and proc.stderr is not None
        stderr_task = asyncio.ensure_future(proc.stderr.read())

        chunks: list[bytes] = []
        total_size = 0
        truncated = False
        try:
            while True:
                chunk = await proc.stdout.read(_READ_CHUNK)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > self.max_output_bytes:
                    logger.warning(
                        "git output exceeded %dMB limit, truncating",
                        self.max_output_bytes // (1024 * 1024),
                    )
                    truncated = True
                    _kill(proc)
                    break
                chunks.append(chunk)

            stderr = await stderr_task
            await proc.wait()
        except asyncio.CancelledError:
            stderr_task.cancel()
            raise
        return b"".join(chunks), stderr, truncated


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    # Stable, English, non-interactive output for the parsers
    env["LC_ALL"] = "C"
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["GIT_PAGER"] = "cat"
    env.pop("GIT_DIR", None)
    env.pop("GIT_WORK_TREE", None)
    return env


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
