"""Tests for the working-tree state reader."""

import asyncio

import pytest

from reposcan.exceptions import PathNotAccessible, ProcessExecutionFailure
from reposcan.git.models import DETACHED_HEAD, ChangeKind
from reposcan.git.worktree import WorkingTreeReader

STATUS = "status --porcelain --untracked-files=all"


def scripted(fake_executor, **overrides):
    responses = {
        STATUS: " M a.py\n?? b.py\n D gone.py\n",
        "rev-parse --abbrev-ref HEAD": "main\n",
        "rev-parse HEAD": "abcdef1234567890abcdef1234567890abcdef12\n",
        "branch --format=%(refname:short)": "main\nfeature\n",
        "branch -r --format=%(refname:lstrip=2)": "origin/HEAD\norigin/main\n",
        "rev-list --left-right --count HEAD...@{upstream}": "1\t2\n",
        "diff --numstat HEAD -- a.py": "3\t1\ta.py\n",
    }
    responses.update(overrides)
    return fake_executor(responses)


class TestWorkingTreeReaderScripted:
    def test_full_state(self, fake_repo, fake_executor):
        executor = scripted(fake_executor)
        state = asyncio.run(WorkingTreeReader(executor).read(fake_repo))

        assert state.branch == "main"
        assert state.head == "abcdef12"
        assert (state.ahead, state.behind) == (1, 2)
        assert state.local_branches == ("main", "feature")
        assert state.remote_branches == ("origin/main",)
        assert state.dirty
        # Leading space is part of the status code
        assert state.status_short.startswith(" M a.py")

        changes = {c.file_path: c for c in state.file_changes}
        assert changes["a.py"].change_type is ChangeKind.MODIFIED
        assert (changes["a.py"].lines_added, changes["a.py"].lines_removed) == (3, 1)
        assert changes["b.py"].change_type is ChangeKind.ADDED
        assert changes["gone.py"].change_type is ChangeKind.DELETED

    def test_deleted_files_get_no_diff_query(self, fake_repo, fake_executor):
        executor = scripted(fake_executor)
        asyncio.run(WorkingTreeReader(executor).read(fake_repo))
        assert executor.called("diff --numstat HEAD -- gone.py") == 0

    def test_diff_falls_back_to_unstaged(self, fake_repo, fake_executor):
        executor = scripted(
            fake_executor,
            **{
                STATUS: " M a.py\n",
                "diff --numstat HEAD -- a.py": ProcessExecutionFailure("bad revision HEAD"),
                "diff --numstat -- a.py": "7\t0\ta.py\n",
            },
        )
        state = asyncio.run(WorkingTreeReader(executor).read(fake_repo))
        assert state.file_changes[0].lines_added == 7

    def test_no_upstream_means_zero(self, fake_repo, fake_executor):
        executor = scripted(
            fake_executor,
            **{"rev-list --left-right --count HEAD...@{upstream}": ProcessExecutionFailure("no upstream")},
        )
        state = asyncio.run(WorkingTreeReader(executor).read(fake_repo))
        assert (state.ahead, state.behind) == (0, 0)

    def test_detached_head(self, fake_repo, fake_executor):
        executor = scripted(fake_executor, **{"rev-parse --abbrev-ref HEAD": "HEAD\n"})
        state = asyncio.run(WorkingTreeReader(executor).read(fake_repo))
        assert state.branch == DETACHED_HEAD

    def test_unborn_branch(self, fake_repo, fake_executor):
        executor = scripted(
            fake_executor,
            **{
                "rev-parse --abbrev-ref HEAD": ProcessExecutionFailure("ambiguous argument 'HEAD'"),
                "rev-parse HEAD": ProcessExecutionFailure("ambiguous argument 'HEAD'"),
                "symbolic-ref --short HEAD": "main\n",
            },
        )
        state = asyncio.run(WorkingTreeReader(executor).read(fake_repo))
        assert state.branch == "main"
        assert state.head == ""

    def test_status_failure_fails_the_read(self, fake_repo, fake_executor):
        executor = scripted(fake_executor, **{STATUS: ProcessExecutionFailure("index locked")})
        with pytest.raises(ProcessExecutionFailure):
            asyncio.run(WorkingTreeReader(executor).read(fake_repo))

    def test_clean_tree(self, fake_repo, fake_executor):
        executor = scripted(fake_executor, **{STATUS: ""})
        state = asyncio.run(WorkingTreeReader(executor).read(fake_repo))
        assert not state.dirty
        assert state.file_changes == ()

    def test_missing_path(self, tmp_path, fake_executor):
        with pytest.raises(PathNotAccessible):
            asyncio.run(WorkingTreeReader(fake_executor()).read(tmp_path / "missing"))


@pytest.mark.git
class TestWorkingTreeReaderRealRepository:
    def test_modified_and_untracked(self, git_repo):
        repo = git_repo()
        repo.commit("init", {"tracked.py": "a\nb\n"})
        repo.write("tracked.py", "a\nb\nc\nd\n")
        repo.write("new.py", "fresh\n")

        state = asyncio.run(WorkingTreeReader().read(repo.path))

        assert state.dirty
        assert len(state.file_changes) == 2
        changes = {c.file_path: c for c in state.file_changes}
        assert changes["tracked.py"].change_type is ChangeKind.MODIFIED
        assert changes["tracked.py"].lines_added == 2
        assert changes["new.py"].change_type is ChangeKind.ADDED
        assert state.branch == "main"
        assert len(state.head) == 8

    def test_clean_repository(self, git_repo):
        repo = git_repo()
        repo.commit("init")
        state = asyncio.run(WorkingTreeReader().read(repo.path))

        assert not state.dirty
        assert state.local_branches == ("main",)
        assert state.remote_branches == ()
        assert (state.ahead, state.behind) == (0, 0)

    def test_empty_repository(self, git_repo):
        repo = git_repo()
        state = asyncio.run(WorkingTreeReader().read(repo.path))

        assert state.branch == "main"
        assert state.head == ""
        assert not state.dirty
