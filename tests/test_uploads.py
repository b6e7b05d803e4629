"""
Tests for upload descriptors and form data.
"""

import pytest

from inquest._uploads import FormData, UploadFile, create_upload_file_from_path
from inquest.faults import FilesystemFault


class TestUploadFile:

    def test_from_path(self, upload_path):
        upload = create_upload_file_from_path("a.png", upload_path, "image/png")
        assert upload.filename == "a.png"
        assert upload.content_type == "image/png"
        assert upload.size == 4
        assert upload.path == upload_path
        assert not upload.is_moved

    def test_read_from_temp_path(self, upload_path):
        upload = create_upload_file_from_path("a.png", upload_path)
        assert upload.read() == b"data"

    def test_read_without_path(self):
        assert UploadFile(filename="empty").read() == b""

    def test_move_to(self, upload_path, tmp_path):
        upload = create_upload_file_from_path("a.png", upload_path)
        dest = upload.move_to(tmp_path / "stored" / "a.png")

        assert upload.is_moved
        assert upload.path == dest
        assert dest.read_bytes() == b"data"
        assert not upload_path.exists()
        assert upload.read() == b"data"

    def test_move_refuses_existing(self, upload_path, tmp_path):
        existing = tmp_path / "exists.png"
        existing.write_bytes(b"old")
        upload = create_upload_file_from_path("a.png", upload_path)

        with pytest.raises(FileExistsError):
            upload.move_to(existing)

        upload.move_to(existing, overwrite=True)
        assert existing.read_bytes() == b"data"

    def test_move_twice(self, upload_path, tmp_path):
        upload = create_upload_file_from_path("a.png", upload_path)
        upload.move_to(tmp_path / "one.png")
        with pytest.raises(FilesystemFault):
            upload.move_to(tmp_path / "two.png")

    def test_close_removes_temp_file(self, upload_path):
        upload = create_upload_file_from_path("a.png", upload_path)
        upload.close()
        assert not upload_path.exists()

    def test_close_keeps_moved_file(self, upload_path, tmp_path):
        upload = create_upload_file_from_path("a.png", upload_path)
        dest = upload.move_to(tmp_path / "kept.png")
        upload.close()
        assert dest.exists()


class TestFormData:

    def test_from_pairs_nests(self, upload_path):
        upload = create_upload_file_from_path("a.png", upload_path)
        form = FormData.from_pairs(
            fields=[("user[name]", "ann"), ("tags[]", "x")],
            files=[("docs[avatar]", upload)],
        )
        assert form.get_field("user[name]") == "ann"
        assert form.get_field("tags[0]") == "x"
        assert form.get_file("docs[avatar]") is upload
        assert form.get_file("docs") is None

    def test_flat_views(self, upload_path):
        upload = create_upload_file_from_path("a.png", upload_path)
        form = FormData.from_pairs(fields=[("a", "1"), ("b[c]", "2")], files=[("f", upload)])
        assert form.flat_fields() == [("a", "1"), ("b[c]", "2")]
        assert form.flat_files() == [("f", upload)]

    def test_cleanup(self, upload_path):
        upload = create_upload_file_from_path("a.png", upload_path)
        FormData.from_pairs(files=[("f", upload)]).cleanup()
        assert not upload_path.exists()
