"""Tests for file-change batches."""

import pytest

from reposcan.git.models import ChangeKind, FileChange
from reposcan.sync import build_file_change_batch, file_type_of

STAMP = "2024-05-01T12:00:00+00:00"


class TestFileType:
    @pytest.mark.parametrize(
        "path, expected",
        [
            ("src/app.py", "py"),
            ("archive.tar.gz", "gz"),
            ("Makefile", ""),
            (".gitignore", ""),
        ],
    )
    def test_extension(self, path, expected):
        assert file_type_of(path) == expected


class TestBuildFileChangeBatch:
    def test_records_tagged(self):
        changes = [
            FileChange("src/app.py", ChangeKind.MODIFIED, 3, 1),
            FileChange("README.md", ChangeKind.ADDED, 10, 0),
        ]
        batch = build_file_change_batch(changes, "s1", "u1", "p1", observed_at=STAMP)

        assert len(batch) == 2
        row = batch.records[0].to_dict()
        assert row == {
            "session_id": "s1",
            "user_id": "u1",
            "project_id": "p1",
            "file_path": "src/app.py",
            "file_type": "py",
            "change_type": "MODIFIED",
            "lines_added": 3,
            "lines_removed": 1,
            "first_change_at": STAMP,
            "last_change_at": STAMP,
        }

    def test_duplicate_path_keeps_last(self):
        changes = [
            FileChange("a.py", ChangeKind.ADDED, 1, 0),
            FileChange("b.py", ChangeKind.MODIFIED, 2, 2),
            FileChange("a.py", ChangeKind.MODIFIED, 5, 0),
        ]
        batch = build_file_change_batch(changes, "s1", "u1", "p1", observed_at=STAMP)

        assert [r.change.file_path for r in batch.records] == ["a.py", "b.py"]
        assert batch.records[0].change.lines_added == 5

    def test_empty(self):
        batch = build_file_change_batch([], "s1", "u1", "p1")
        assert batch.is_empty
        assert batch.to_dict()["fileChanges"] == []

    def test_default_timestamp(self):
        batch = build_file_change_batch([FileChange("a.py", ChangeKind.ADDED)], "s1", "u1", "p1")
        assert batch.records[0].observed_at.endswith("+00:00")

    @pytest.mark.parametrize("ids", [("", "u", "p"), ("s", "", "p"), ("s", "u", "")])
    def test_identifiers_required(self, ids):
        with pytest.raises(ValueError):
            build_file_change_batch([], *ids)

    def test_to_dict_envelope(self):
        batch = build_file_change_batch(
            [FileChange("x.ts", ChangeKind.DELETED)], "s1", "u1", "p1", observed_at=STAMP
        )
        data = batch.to_dict()
        assert (data["sessionId"], data["userId"], data["projectId"]) == ("s1", "u1", "p1")
        assert data["fileChanges"][0]["change_type"] == "DELETED"
