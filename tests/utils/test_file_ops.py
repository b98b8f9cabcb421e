"""
Tests for archive extraction and directory removal.
"""

import io
import tarfile
import zipfile
import pytest

from conftest import game_files, make_tar_gz, make_zip
from yatl.models.exceptions import ExtractionError, TaskCancelled
from yatl.utils.file_ops import FileOperations


@pytest.fixture
def file_ops():
    return FileOperations()


class TestExtractArchive:
    """Tests for zip and tar.gz extraction."""

    def test_extract_zip(self, file_ops, temp_dir):
        archive = make_zip(temp_dir / "game.zip", game_files())
        progress = []

        count = file_ops.extract_archive(archive, temp_dir / "out",
                                         progress_callback=lambda f, m: progress.append(f))

        assert count == 4
        assert (temp_dir / "out" / "Terasology" / "lib" / "Terasology.jar").read_bytes() == b"game jar"
        assert progress[-1] == 1.0

    def test_extract_tar_gz(self, file_ops, temp_dir):
        archive = make_tar_gz(temp_dir / "game.tar.gz", game_files())

        assert file_ops.extract_archive(archive, temp_dir / "out") == 4
        assert (temp_dir / "out" / "Terasology" / "README.markdown").exists()

    def test_archive_name_selects_format(self, file_ops, temp_dir):
        archive = make_tar_gz(temp_dir / "download.part", game_files())

        file_ops.extract_archive(archive, temp_dir / "out", archive_name="archive.tgz")

        assert (temp_dir / "out" / "Terasology" / "modules" / "core.jar").exists()

    def test_zip_member_escaping_destination(self, file_ops, temp_dir):
        archive = make_zip(temp_dir / "evil.zip", {"../outside.txt": b"x"})

        with pytest.raises(ExtractionError, match="escapes"):
            file_ops.extract_archive(archive, temp_dir / "out")

        assert not (temp_dir / "outside.txt").exists()

    def test_tar_member_escaping_destination(self, file_ops, temp_dir):
        archive = temp_dir / "evil.tar.gz"
        with tarfile.open(archive, 'w:gz') as tar:
            info = tarfile.TarInfo("../outside.txt")
            info.size = 1
            tar.addfile(info, io.BytesIO(b"x"))

        with pytest.raises(ExtractionError):
            file_ops.extract_archive(archive, temp_dir / "out")

        assert not (temp_dir / "outside.txt").exists()

    def test_corrupt_archive(self, file_ops, temp_dir):
        archive = temp_dir / "broken.zip"
        archive.write_bytes(b"not a zip")

        with pytest.raises(ExtractionError):
            file_ops.extract_archive(archive, temp_dir / "out")

    def test_unsupported_format(self, file_ops, temp_dir):
        archive = temp_dir / "game.rar"
        archive.write_bytes(b"rar")

        with pytest.raises(ExtractionError, match="Unsupported"):
            file_ops.extract_archive(archive, temp_dir / "out")

    def test_cancel_between_members(self, file_ops, temp_dir):
        archive = make_zip(temp_dir / "game.zip", game_files())
        calls = []

        def check():
            calls.append(1)
            if len(calls) == 2:
                raise TaskCancelled("stop")

        with pytest.raises(TaskCancelled):
            file_ops.extract_archive(archive, temp_dir / "out", check_cancelled=check)


class TestGameRoot:

    def test_single_wrapping_directory(self, file_ops, temp_dir):
        make_zip(temp_dir / "game.zip", game_files())
        file_ops.extract_archive(temp_dir / "game.zip", temp_dir / "out")

        assert file_ops.get_extracted_root_dir(temp_dir / "out") == temp_dir / "out" / "Terasology"

    def test_flat_archive(self, file_ops, temp_dir):
        make_zip(temp_dir / "game.zip", game_files(root=""))
        file_ops.extract_archive(temp_dir / "game.zip", temp_dir / "out")

        assert file_ops.get_extracted_root_dir(temp_dir / "out") == temp_dir / "out"

    def test_empty(self, file_ops, temp_dir):
        (temp_dir / "out").mkdir()

        assert file_ops.get_extracted_root_dir(temp_dir / "out") is None


class TestRemoveDirectory:
    """Tests for bottom-up removal."""

    def test_removes_tree(self, file_ops, temp_dir):
        target = temp_dir / "game"
        (target / "a" / "b").mkdir(parents=True)
        (target / "a" / "b" / "file").write_text("x")
        (target / "top").write_text("y")
        visited = []

        failed = file_ops.remove_directory(target, check_cancelled=lambda: visited.append(1))

        assert failed == []
        assert not target.exists()
        assert len(visited) == 2

    def test_missing_directory(self, file_ops, temp_dir):
        assert file_ops.remove_directory(temp_dir / "missing") == []

    def test_symlink_is_not_followed(self, file_ops, temp_dir):
        outside = temp_dir / "outside"
        outside.mkdir()
        (outside / "keep").write_text("x")
        target = temp_dir / "game"
        target.mkdir()
        (target / "link").symlink_to(outside, target_is_directory=True)

        assert file_ops.remove_directory(target) == []
        assert (outside / "keep").exists()
        assert not target.exists()

    def test_zip_file_is_supported(self, file_ops):
        assert file_ops.is_supported_archive("Terasology.ZIP")
        assert file_ops.is_supported_archive("game.tar.gz")
        assert not file_ops.is_supported_archive("game.7z")
