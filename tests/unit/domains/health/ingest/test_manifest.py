"""Tests for content hashing and the extraction manifest."""

from __future__ import annotations

import hashlib

from vitals.core.storage.models import ManifestEntry
from vitals.domains.health.ingest.manifest import (
    CacheManifest,
    calculate_file_hash,
    calculate_folder_hash,
    manifest_key,
    needs_extraction,
    update_manifest_entry,
)


class TestFileHash:
    def test_sha256_of_bytes(self, tmp_path):
        path = tmp_path / "labs.pdf"
        path.write_bytes(b"%PDF-1.4 albumin")
        assert calculate_file_hash(path) == hashlib.sha256(b"%PDF-1.4 albumin").hexdigest()

    def test_large_file_streams(self, tmp_path):
        data = b"a" * (200 * 1024 + 7)
        path = tmp_path / "big.pdf"
        path.write_bytes(data)
        assert calculate_file_hash(path) == hashlib.sha256(data).hexdigest()

    def test_unreadable_is_empty(self, tmp_path):
        assert calculate_file_hash(tmp_path / "missing.pdf") == ""


class TestFolderHash:
    def _export(self, root):
        (root / "nested").mkdir(parents=True)
        (root / "sleeps.csv").write_text("date,hrv\n2025-01-01,50\n")
        (root / "nested" / "cycles.csv").write_text("date,rhr\n2025-01-01,55\n")
        return root

    def test_stable(self, tmp_path):
        folder = self._export(tmp_path / "export")
        assert calculate_folder_hash(folder) == calculate_folder_hash(folder)
        assert calculate_folder_hash(folder) != ""

    def test_changes_on_edit(self, tmp_path):
        folder = self._export(tmp_path / "export")
        before = calculate_folder_hash(folder)
        (folder / "nested" / "cycles.csv").write_text("date,rhr\n2025-01-01,56\n")
        assert calculate_folder_hash(folder) != before

    def test_changes_on_rename(self, tmp_path):
        folder = self._export(tmp_path / "export")
        before = calculate_folder_hash(folder)
        (folder / "sleeps.csv").rename(folder / "sleep.csv")
        assert calculate_folder_hash(folder) != before

    def test_hidden_files_ignored(self, tmp_path):
        folder = self._export(tmp_path / "export")
        before = calculate_folder_hash(folder)
        (folder / ".DS_Store").write_text("finder")
        assert calculate_folder_hash(folder) == before

    def test_missing_folder_is_empty(self, tmp_path):
        assert calculate_folder_hash(tmp_path / "nope") == ""


class TestManifestFunctions:
    def test_key_is_relative_posix(self, tmp_path):
        path = tmp_path / "Bloodwork" / "labs.pdf"
        assert manifest_key(tmp_path, path) == "Bloodwork/labs.pdf"

    def test_unknown_path_needs_extraction(self):
        assert needs_extraction({}, "Bloodwork/labs.pdf", "abc")

    def test_same_hash_is_skipped(self):
        manifest: dict[str, ManifestEntry] = {}
        update_manifest_entry(manifest, "labs.pdf", "abc", "bloodwork")
        assert not needs_extraction(manifest, "labs.pdf", "abc")

    def test_changed_hash_invalidates(self):
        manifest: dict[str, ManifestEntry] = {}
        update_manifest_entry(manifest, "labs.pdf", "abc", "bloodwork")
        assert needs_extraction(manifest, "labs.pdf", "def")

    def test_empty_hash_always_extracts(self):
        manifest: dict[str, ManifestEntry] = {}
        update_manifest_entry(manifest, "labs.pdf", "", "bloodwork")
        assert needs_extraction(manifest, "labs.pdf", "")

    def test_update_records_timestamp(self):
        manifest: dict[str, ManifestEntry] = {}
        entry = update_manifest_entry(manifest, "labs.pdf", "abc", "bloodwork")
        assert entry.last_extracted_at.endswith("Z")
        assert manifest["labs.pdf"] is entry


class TestCacheManifest:
    def test_tracks_changes(self):
        manifest = CacheManifest()
        assert not manifest.changed
        manifest.update("labs.pdf", "abc", "bloodwork")
        assert manifest.changed
        assert "labs.pdf" in manifest
        assert len(manifest) == 1
        assert manifest.get("labs.pdf").hash == "abc"

    def test_does_not_alias_input(self):
        entries = {
            "a.pdf": ManifestEntry("a.pdf", "h", "bloodwork", "2026-01-01T00:00:00.000Z")
        }
        manifest = CacheManifest(entries)
        manifest.update("b.pdf", "h2", "dexa")
        assert "b.pdf" not in entries
        assert not manifest.needs_extraction("a.pdf", "h")
