"""
Tests for the artifact store: naming, atomic writes, retention sweeps.

Retention order depends on mtimes, so tests that check which files survive
set them explicitly with os.utime instead of relying on write order.
"""
import os

import pytest

from myspeech.errors import StorageError
from myspeech.storage.artifacts import FILENAME_PATTERN, ArtifactStore

BASE_NS = 1_700_000_000 * 10**9


def _touch(directory, name, age_index, data=b"x"):
    """File whose mtime increases with age_index (higher = newer)."""
    p = directory / name
    p.write_bytes(data)
    ns = BASE_NS + age_index * 10**9
    os.utime(p, ns=(ns, ns))
    return p


class TestNaming:

    def test_filename_shape(self, store):
        name = store.make_filename("Hello", "piper_en_amy")
        assert FILENAME_PATTERN.match(name)
        assert name.startswith("speech_") and name.endswith(".wav")

    def test_identical_requests_get_distinct_names(self, store):
        names = {store.make_filename("same", "same_voice") for _ in range(500)}
        assert len(names) == 500

    def test_url_and_path(self, output_dir):
        store = ArtifactStore(output_dir, public_prefix="/audio/")
        assert store.url_for("speech_000000000000.wav") == "/audio/speech_000000000000.wav"
        assert store.path_for("speech_000000000000.wav") == output_dir / "speech_000000000000.wav"

    def test_relative_dir_gives_absolute_paths(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        store = ArtifactStore("public/audio")

        path = store.persist("speech_aaaaaaaaaaaa.wav", b"RIFFdata")

        assert store.base_dir.is_absolute()
        assert path.is_absolute()
        assert path == (tmp_path / "public" / "audio" / "speech_aaaaaaaaaaaa.wav").resolve()

    def test_retention_limit_must_be_positive(self, output_dir):
        with pytest.raises(ValueError):
            ArtifactStore(output_dir, retention_limit=0)


class TestPersist:

    def test_persist_creates_dir_and_file(self, store, output_dir):
        path = store.persist("speech_aaaaaaaaaaaa.wav", b"RIFFdata")

        assert path == output_dir / "speech_aaaaaaaaaaaa.wav"
        assert path.read_bytes() == b"RIFFdata"
        # No temp files left behind
        assert sorted(p.name for p in output_dir.iterdir()) == ["speech_aaaaaaaaaaaa.wav"]

    def test_persist_into_file_path_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        store = ArtifactStore(blocker)

        with pytest.raises(StorageError) as exc_info:
            store.persist("speech_aaaaaaaaaaaa.wav", b"data")
        assert exc_info.value.code == "STORAGE_ERROR"

    def test_persist_applies_retention(self, output_dir):
        store = ArtifactStore(output_dir, retention_limit=3)
        for i in range(6):
            store.persist(store.make_filename(f"t{i}", "v"), b"data")

        assert len([p for p in output_dir.iterdir() if p.suffix == ".wav"]) == 3


class TestPromote:

    def test_promote_moves_staging_file(self, store, output_dir):
        store.ensure_dir()
        staging = store.staging_path("speech_bbbbbbbbbbbb.wav")
        staging.write_bytes(b"engine audio")

        final = store.promote(staging, "speech_bbbbbbbbbbbb.wav")

        assert final.read_bytes() == b"engine audio"
        assert not staging.exists()

    def test_staging_files_are_not_artifacts(self, store, output_dir):
        store.ensure_dir()
        store.staging_path("speech_cccccccccccc.wav").write_bytes(b"partial")
        assert store.storage_info()["file_count"] == 0

    def test_discard_missing_staging_is_noop(self, store, output_dir):
        store.discard_staging(output_dir / "nothing.part")

    def test_promote_missing_staging_raises(self, store, output_dir):
        store.ensure_dir()
        with pytest.raises(StorageError):
            store.promote(store.staging_path("speech_dddddddddddd.wav"), "speech_dddddddddddd.wav")


class TestSweep:

    def test_sweep_keeps_newest(self, output_dir):
        output_dir.mkdir()
        for i in range(205):
            _touch(output_dir, f"speech_{i:012x}.wav", i)
        store = ArtifactStore(output_dir, retention_limit=200)

        removed = store.sweep()

        assert removed == 5
        remaining = sorted(p.name for p in output_dir.iterdir())
        assert len(remaining) == 200
        for i in range(5):
            assert f"speech_{i:012x}.wav" not in remaining
        assert f"speech_{204:012x}.wav" in remaining

    def test_sweep_counts_mp3_and_ignores_other_files(self, output_dir):
        output_dir.mkdir()
        _touch(output_dir, "old.mp3", 0)
        _touch(output_dir, "mid.wav", 1)
        _touch(output_dir, "new.wav", 2)
        _touch(output_dir, "notes.txt", -5)
        _touch(output_dir, "speech_eeeeeeeeeeee.wav.part", -5)

        removed = ArtifactStore(output_dir, retention_limit=2).sweep()

        assert removed == 1
        assert sorted(p.name for p in output_dir.iterdir()) == \
            ["mid.wav", "new.wav", "notes.txt", "speech_eeeeeeeeeeee.wav.part"]

    def test_sweep_under_limit_is_noop(self, output_dir):
        output_dir.mkdir()
        _touch(output_dir, "a.wav", 0)
        assert ArtifactStore(output_dir, retention_limit=5).sweep() == 0
        assert (output_dir / "a.wav").exists()

    def test_sweep_missing_directory(self, output_dir):
        assert ArtifactStore(output_dir).sweep() == 0

    def test_sweep_explicit_limit(self, output_dir):
        output_dir.mkdir()
        for i in range(4):
            _touch(output_dir, f"f{i}.wav", i)
        assert ArtifactStore(output_dir).sweep(limit=1) == 3
        assert [p.name for p in output_dir.iterdir()] == ["f3.wav"]

    def test_vanished_file_is_skipped(self, output_dir, monkeypatch):
        """A file deleted by someone else between listing and unlink is not an error."""
        output_dir.mkdir()
        for i in range(3):
            _touch(output_dir, f"f{i}.wav", i)
        store = ArtifactStore(output_dir, retention_limit=1)

        listed = store._list_artifacts()
        (output_dir / "f0.wav").unlink()
        monkeypatch.setattr(store, "_list_artifacts", lambda: list(listed))

        assert store.sweep() == 1
        assert [p.name for p in output_dir.iterdir()] == ["f2.wav"]

    def test_list_on_file_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(StorageError):
            ArtifactStore(blocker).sweep()


class TestDeleteAndInfo:

    def test_delete(self, store, output_dir):
        store.persist("speech_ffffffffffff.wav", b"1234")
        assert store.delete("speech_ffffffffffff.wav") is True
        assert store.delete("speech_ffffffffffff.wav") is False

    @pytest.mark.parametrize("name", ["../etc/passwd", "speech_zz.wav", "other.wav", "speech_ffffffffffff.txt"])
    def test_delete_rejects_foreign_names(self, store, name):
        with pytest.raises(ValueError):
            store.delete(name)

    def test_storage_info(self, store, output_dir):
        store.persist("speech_111111111111.wav", b"1234")
        store.persist("speech_222222222222.wav", b"123456")

        info = store.storage_info()

        assert info["dir"] == str(output_dir)
        assert info["file_count"] == 2
        assert info["total_bytes"] == 10
        assert info["retention_limit"] == 200
