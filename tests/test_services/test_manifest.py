"""Tests for push manifests and repository path mapping."""

from __future__ import annotations

import json
import string
from dataclasses import dataclass

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from starbase.services.hashing import file_identity, hash_content, short_hash
from starbase.services.manifest import (
    Manifest,
    build_file_path,
    build_folder_paths,
    build_manifest,
    is_synced_path,
    render_file,
    split_repository_path,
)

PROPERTY_SETTINGS = settings(
    max_examples=200,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)

_SEGMENT = st.text(alphabet=string.ascii_lowercase + string.digits, min_size=1, max_size=8)
_PATH = st.builds(
    lambda parts, ext: "/".join(parts) + f".{ext}",
    st.lists(_SEGMENT, min_size=1, max_size=3),
    st.sampled_from(["bpmn", "dmn"]),
)
_HASH = st.text(alphabet="0123456789abcdef", min_size=64, max_size=64)
_MANIFEST = st.dictionaries(keys=_PATH, values=_HASH, max_size=10)


@dataclass
class _Folder:
    id: str
    parent_folder_id: str | None
    name: str


class TestHashing:
    def test_full_and_short_hash(self) -> None:
        digest = hash_content("<bpmn/>")
        assert len(digest) == 64
        assert short_hash("<bpmn/>") == digest[:16]

    def test_identity_normalizes_root_folder(self) -> None:
        assert file_identity(None, "a", "bpmn") == file_identity("", "a", "bpmn")
        assert file_identity("f1", "a", "bpmn") != file_identity(None, "a", "bpmn")


class TestManifestJson:
    def test_absent_or_empty(self) -> None:
        assert Manifest.from_json(None) is None
        assert Manifest.from_json("") is None

    def test_invalid_json_is_none(self) -> None:
        assert Manifest.from_json("{not json") is None

    def test_non_object_is_none(self) -> None:
        assert Manifest.from_json("[1, 2]") is None

    def test_round_trip_is_sorted(self) -> None:
        manifest = Manifest({"b.bpmn": "2", "a.dmn": "1"})
        text = manifest.to_json()
        assert list(json.loads(text)) == ["a.dmn", "b.bpmn"]
        assert Manifest.from_json(text) == manifest


class TestManifestDiff:
    def test_no_previous_everything_changed(self) -> None:
        current = Manifest({"a.bpmn": "1", "b.bpmn": "2"})
        assert sorted(current.changed_paths(None)) == ["a.bpmn", "b.bpmn"]
        assert current.deleted_paths(None) == []

    def test_changed_and_deleted(self) -> None:
        previous = Manifest({"a.bpmn": "1", "b.bpmn": "2", "gone.dmn": "3"})
        current = Manifest({"a.bpmn": "1", "b.bpmn": "changed", "new.bpmn": "4"})
        assert sorted(current.changed_paths(previous)) == ["b.bpmn", "new.bpmn"]
        assert current.deleted_paths(previous) == ["gone.dmn"]

    @PROPERTY_SETTINGS
    @given(manifest=_MANIFEST)
    def test_identical_manifest_has_no_diff(self, manifest: dict[str, str]) -> None:
        current = Manifest(manifest)
        assert current.changed_paths(Manifest(manifest)) == []
        assert current.deleted_paths(Manifest(manifest)) == []

    @PROPERTY_SETTINGS
    @given(previous=_MANIFEST, current=_MANIFEST)
    def test_diff_partitions_paths(
        self, previous: dict[str, str], current: dict[str, str]
    ) -> None:
        now = Manifest(current)
        changed = set(now.changed_paths(previous))
        deleted = set(now.deleted_paths(previous))

        assert changed <= set(current)
        assert deleted == set(previous) - set(current)
        assert not changed & deleted
        unchanged = set(current) - changed
        assert all(previous.get(path) == current[path] for path in unchanged)

    @PROPERTY_SETTINGS
    @given(manifest=_MANIFEST)
    def test_json_round_trip(self, manifest: dict[str, str]) -> None:
        assert Manifest.from_json(Manifest(manifest).to_json()) == manifest


class TestPaths:
    def test_folder_paths_nested(self) -> None:
        folders = [
            _Folder("c", "b", "leaf"),
            _Folder("a", None, "top"),
            _Folder("b", "a", "mid"),
        ]
        assert build_folder_paths(folders) == {"a": "top", "b": "top/mid", "c": "top/mid/leaf"}

    def test_folder_paths_unknown_parent_and_cycle(self) -> None:
        folders = [
            _Folder("orphan", "missing", "orphan"),
            _Folder("x", "y", "x"),
            _Folder("y", "x", "y"),
        ]
        paths = build_folder_paths(folders)
        assert paths["orphan"] == "orphan"
        assert paths["x"] in {"y/x", "x"}
        assert set(paths) == {"orphan", "x", "y"}

    def test_file_path(self) -> None:
        assert build_file_path("", "invoice", "bpmn") == "invoice.bpmn"
        assert build_file_path("billing/eu", "rates", "dmn") == "billing/eu/rates.dmn"
        assert build_file_path("", "invoice.bpmn", "bpmn") == "invoice.bpmn"

    def test_split_repository_path(self) -> None:
        assert split_repository_path("invoice.bpmn") == ("", "invoice", "bpmn")
        assert split_repository_path("billing/eu/rates.dmn") == ("billing/eu", "rates", "dmn")
        assert split_repository_path("odd/readme.txt") == ("odd", "readme.txt", "bpmn")

    @PROPERTY_SETTINGS
    @given(path=_PATH)
    def test_split_then_build_is_identity(self, path: str) -> None:
        folder_path, name, type_ = split_repository_path(path)
        assert build_file_path(folder_path, name, type_) == path

    def test_is_synced_path(self) -> None:
        assert is_synced_path("a/b.bpmn")
        assert is_synced_path("c.dmn")
        assert not is_synced_path("README.md")
        assert not is_synced_path("diagram.bpmn.bak")

    def test_build_manifest_from_rendered_files(self) -> None:
        files = [
            render_file("", "invoice", "bpmn", "<a/>"),
            render_file("billing", "rates", "dmn", "<d/>"),
        ]
        assert build_manifest(files) == {
            "invoice.bpmn": hash_content("<a/>"),
            "billing/rates.dmn": hash_content("<d/>"),
        }
