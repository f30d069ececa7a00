"""Tests for the non-raising filesystem primitives."""

from __future__ import annotations

from vitals.core import fs


class TestFsCall:
    def test_success_carries_value(self):
        result = fs.fs_call("op", "/x", lambda: 42)
        assert result.ok
        assert result.unwrap_or(0) == 42

    def test_oserror_becomes_result(self):
        def _boom():
            raise PermissionError("denied")

        result = fs.fs_call("read", "/secret", _boom)
        assert not result.ok
        assert result.error.op == "read"
        assert result.error.path == "/secret"
        assert isinstance(result.error.cause, PermissionError)
        assert result.unwrap_or("fallback") == "fallback"


class TestPrimitives:
    def test_missing_paths_degrade(self, tmp_path):
        missing = tmp_path / "nope"
        assert fs.is_dir(missing) is False
        assert fs.exists(missing) is False
        assert fs.list_dir(missing) == []
        assert fs.stat(missing) is None
        assert fs.read_text(missing) == ""

    def test_list_dir_is_sorted(self, tmp_path):
        for name in ("b.txt", "a.txt", "c.txt"):
            (tmp_path / name).write_text("x")
        assert [e.name for e in fs.list_dir(tmp_path)] == ["a.txt", "b.txt", "c.txt"]

    def test_read_text(self, tmp_path):
        path = tmp_path / "report.txt"
        path.write_text("Albumin 4.5", encoding="utf-8")
        assert fs.read_text(path) == "Albumin 4.5"
        assert fs.stat(path).st_size == len("Albumin 4.5")
