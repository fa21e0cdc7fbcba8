"""
Tests for persistence — the YAML artifact registry.
"""

import os
from pathlib import Path

import pytest
import yaml

from fieldpipe import __version__
from fieldpipe.core.errors import InvalidArgument
from fieldpipe.core.persistence import artifacts
from fieldpipe.core.persistence.artifacts import ArtifactStore, hash_file


@pytest.fixture
def store(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore.open(tmp_path / "results" / "artifact_registry.yaml")


@pytest.fixture
def data_file(tmp_path: Path) -> Path:
    path = tmp_path / "counts.csv"
    path.write_text("site,count\nA,3\nB,5\n")
    return path


class TestOpen:
    def test_creates_registry_file(self, tmp_path: Path):
        path = tmp_path / "nested" / "registry.yaml"
        store = ArtifactStore.open(path)
        assert path.is_file()
        assert len(store) == 0

        doc = yaml.safe_load(path.read_text())
        assert doc["registry_version"] == "1.0"
        assert doc["pipeline_version"] == __version__
        assert doc["artifacts"] == {}

    def test_reopen_keeps_artifacts(self, store, data_file):
        store.register("counts", "raw_data", "ingest", data_file)
        reopened = ArtifactStore.open(store.path)
        assert "counts" in reopened
        assert reopened.get("counts").file_hash_sha256 == hash_file(data_file)
        assert reopened.created_utc == store.created_utc

    def test_no_temp_files_left(self, store, data_file):
        store.register("counts", "raw_data", "ingest", data_file)
        leftovers = [p.name for p in store.path.parent.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_save_closes_temp_descriptor(self, store, monkeypatch):
        opened: list[int] = []
        real_mkstemp = artifacts.tempfile.mkstemp

        def recording_mkstemp(*args, **kwargs):
            fd, path = real_mkstemp(*args, **kwargs)
            opened.append(fd)
            return fd, path

        monkeypatch.setattr(artifacts.tempfile, "mkstemp", recording_mkstemp)
        store.save()

        assert len(opened) == 1
        with pytest.raises(OSError):
            os.fstat(opened[0])

    def test_failed_write_closes_and_removes_temp(self, store, monkeypatch):
        opened: list[int] = []
        real_mkstemp = artifacts.tempfile.mkstemp

        def recording_mkstemp(*args, **kwargs):
            fd, path = real_mkstemp(*args, **kwargs)
            opened.append(fd)
            return fd, path

        def refuse_replace(self, target):
            raise OSError("disk full")

        monkeypatch.setattr(artifacts.tempfile, "mkstemp", recording_mkstemp)
        monkeypatch.setattr(Path, "replace", refuse_replace)
        with pytest.raises(OSError, match="disk full"):
            store.save()

        with pytest.raises(OSError):
            os.fstat(opened[0])
        assert [p for p in store.path.parent.iterdir() if p.suffix == ".tmp"] == []


class TestRegister:
    def test_entry_fields(self, store, data_file):
        entry = store.register(
            "counts",
            "raw_data",
            "ingest",
            data_file,
            input_artifacts=["survey"],
            metadata={"rows": 2},
        )
        assert entry.type == "raw_data"
        assert entry.workflow == "ingest"
        assert entry.file_size_bytes == data_file.stat().st_size
        assert entry.input_artifacts == ["survey"]
        assert entry.metadata == {"rows": 2}
        assert len(entry.file_hash_sha256) == 64

    def test_invalid_type(self, store, data_file):
        with pytest.raises(InvalidArgument, match="Invalid artifact_type 'bogus'"):
            store.register("x", "bogus", "ingest", data_file)

    def test_missing_file(self, store, tmp_path):
        with pytest.raises(FileNotFoundError):
            store.register("x", "raw_data", "ingest", tmp_path / "absent.csv")

    def test_overwrite(self, store, data_file):
        store.register("counts", "raw_data", "ingest", data_file)
        store.register("counts", "processed_data", "clean", data_file)
        assert len(store) == 1
        assert store.get("counts").type == "processed_data"


class TestQueries:
    def test_list_filters(self, store, data_file):
        store.register("a", "raw_data", "ingest", data_file)
        store.register("b", "plot", "figures", data_file)
        store.register("c", "plot", "report", data_file)

        assert [e.name for e in store.list(artifact_type="plot")] == ["b", "c"]
        assert [e.name for e in store.list(workflow="ingest")] == ["a"]
        assert [e.name for e in store.list("plot", "report")] == ["c"]

    def test_latest(self, store, data_file):
        assert store.latest("plot") is None
        store.register("old", "plot", "figures", data_file)
        store.get("old").created_utc = "2020-01-01T00:00:00Z"
        store.register("new", "plot", "figures", data_file)
        assert store.latest("plot").name == "new"

    def test_verify(self, store, data_file):
        store.register("counts", "raw_data", "ingest", data_file)
        assert store.verify("counts") is True

        data_file.write_text("site,count\nA,4\n")
        assert store.verify("counts") is False
        assert store.verify("unknown") is False

    def test_verify_deleted_file(self, store, data_file):
        store.register("counts", "raw_data", "ingest", data_file)
        data_file.unlink()
        assert store.verify("counts") is False


class TestValidate:
    def test_empty(self, store):
        result = store.validate()
        assert not result.valid
        assert result.errors == ["Registry is empty"]

    def test_missing_required_type(self, store, data_file):
        store.register("counts", "raw_data", "ingest", data_file)
        result = store.validate()
        assert not result.valid
        assert result.missing_types == ["results"]

    def test_missing_file_and_hash_mismatch(self, store, data_file, tmp_path):
        other = tmp_path / "summary.csv"
        other.write_text("total\n8\n")
        store.register("counts", "raw_data", "ingest", data_file)
        store.register("summary", "results", "summarize", other)

        data_file.write_text("changed\n")
        other.unlink()
        result = store.validate(check_hashes=True)

        assert not result.valid
        assert result.missing_files == ["summary"]
        assert result.hash_mismatches == ["counts"]
        assert result.warnings == ["Hash mismatch for 'counts'"]

    def test_valid(self, store, data_file):
        store.register("counts", "raw_data", "ingest", data_file)
        store.register("summary", "results", "summarize", data_file)
        assert store.validate(check_hashes=True).valid
