"""Shared test fixtures for reposcan tests."""

import os
import shutil
import subprocess
from pathlib import Path

import pytest

from reposcan.exceptions import ProcessExecutionFailure, ScanTimeout
from reposcan.git.executor import ProcessResult

HAS_GIT = shutil.which("git") is not None


def pytest_addoption(parser):
    """Add --run-slow option for slow tests."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="run slow tests",
    )


def pytest_configure(config):
    """Configure markers."""
    config.addinivalue_line("markers", "slow: mark test as slow to run")
    config.addinivalue_line("markers", "git: test builds real git repositories")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is given; skip git tests without git."""
    skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
    skip_git = pytest.mark.skip(reason="git not found")
    for item in items:
        if "slow" in item.keywords and not config.getoption("--run-slow"):
            item.add_marker(skip_slow)
        if "git" in item.keywords and not HAS_GIT:
            item.add_marker(skip_git)


# ── real repositories ─────────────────────────────────────────────


class GitRepo:
    """A throwaway git repository with deterministic commit dates."""

    def __init__(self, path: Path):
        self.path = path
        self._tick = 0
        path.mkdir(parents=True, exist_ok=True)
        self.git("init", "-q")
        self.git("symbolic-ref", "HEAD", "refs/heads/main")
        self.git("config", "user.email", "test@test.com")
        self.git("config", "user.name", "Test")
        self.git("config", "commit.gpgsign", "false")

    def git(self, *args: str) -> str:
        env = dict(os.environ)
        env.pop("GIT_DIR", None)
        env.pop("GIT_WORK_TREE", None)
        date = f"2024-01-01T00:{self._tick // 60:02d}:{self._tick % 60:02d}+00:00"
        env["GIT_AUTHOR_DATE"] = date
        env["GIT_COMMITTER_DATE"] = date
        result = subprocess.run(
            ["git", *args],
            cwd=self.path,
            capture_output=True,
            text=True,
            env=env,
            check=True,
        )
        return result.stdout

    def write(self, name: str, content: str) -> Path:
        target = self.path / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
        return target

    def commit(self, message: str, files: dict[str, str] | None = None) -> str:
        """Commit ``files`` (default: one new file named after the message)."""
        self._tick += 1
        for name, content in (files or {f"{message}.txt": f"{message}\n"}).items():
            self.write(name, content)
        self.git("add", "-A")
        self.git("commit", "-q", "-m", message)
        return self.head()

    def head(self) -> str:
        return self.git("rev-parse", "HEAD").strip()


@pytest.fixture
def git_repo(tmp_path):
    """Factory for real repositories under tmp_path."""
    if not HAS_GIT:
        pytest.skip("git not found")

    def make(name: str = "repo") -> GitRepo:
        return GitRepo(tmp_path / name)

    return make


# ── scripted executor ─────────────────────────────────────────────


class FakeExecutor:
    """Stands in for GitExecutor with canned output keyed by argument prefix.

    ``responses`` maps a space-joined argument prefix (``"log"``,
    ``"branch -a"``) to stdout text or to an exception to raise. The longest
    matching prefix wins; unmatched invocations return ``default``.
    """

    def __init__(self, responses=None, default=""):
        self.responses = dict(responses or {})
        self.default = default
        self.calls: list[tuple[str, ...]] = []

    def _lookup(self, args):
        joined = " ".join(args)
        matches = [k for k in self.responses if joined == k or joined.startswith(k + " ")]
        if not matches:
            return self.default
        return self.responses[max(matches, key=len)]

    async def run(self, repo_path, args, timeout=None):
        self.calls.append(tuple(args))
        response = self._lookup(args)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(args)
        return response

    async def execute(self, repo_path, args, timeout=None):
        try:
            out = await self.run(repo_path, args, timeout)
        except ScanTimeout:
            # GitExecutor.execute raises timeouts instead of reporting an exit code
            raise
        except ProcessExecutionFailure as e:
            return ProcessResult(tuple(args), 1, "", e.message)
        return ProcessResult(tuple(args), 0, out, "")

    def called(self, prefix: str) -> int:
        return sum(1 for c in self.calls if " ".join(c).startswith(prefix))


@pytest.fixture
def fake_executor():
    """Factory for scripted executors."""
    return FakeExecutor


@pytest.fixture
def fake_repo(tmp_path):
    """A directory that passes working-copy validation (has a .git marker)."""
    path = tmp_path / "fake"
    (path / ".git").mkdir(parents=True)
    return path
