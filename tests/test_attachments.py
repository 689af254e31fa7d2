"""Tests for the attachment migrator."""

import pytest

from storemigrate.errors import AuthenticationError, DownloadError, UploadError
from storemigrate.models.migration import AttachmentCardinality
from storemigrate.models.record import Record
from storemigrate.services.attachments import AttachmentMigrator
from storemigrate.services.staging import StagingArea


@pytest.fixture
def staging_root(tmp_path):
    return tmp_path / "staging"


@pytest.fixture
def migrator(staging_root):
    return AttachmentMigrator(StagingArea(staging_root), download_timeout=7.0)


@pytest.fixture
def target(destination):
    return destination.add_record("posts", {"title": "copy"})


def _staged_files(root):
    if not root.exists():
        return []
    return [p for p in root.rglob("*") if p.is_file()]


class TestMigrateField:

    def test_single_file(self, migrator, source, destination, target, staging_root):
        source_id = source.add_record("posts", {"image": "cover.png"}, files={"cover.png": b"PNG"})

        outcome = migrator.migrate_field(
            source, "posts", source_id, "image", AttachmentCardinality.SINGLE,
            ["cover.png"], destination, target,
        )

        assert outcome.uploaded == ["cover.png"]
        assert outcome.failed == []
        upload = destination.calls_of("upload")[0]
        assert upload[1:5] == ("posts", target, "image", ["cover.png"])
        assert upload[5] == [b"PNG"]
        assert destination.find("posts", target)["image"] == ["cover.png"]
        assert _staged_files(staging_root) == []

    def test_download_uses_timeout(self, migrator, source, destination, target):
        source_id = source.add_record("posts", {}, files={"a.png": b"A"})
        migrator.migrate_field(
            source, "posts", source_id, "image", AttachmentCardinality.SINGLE,
            ["a.png"], destination, target,
        )
        assert source.calls_of("download")[0][4] == 7.0

    def test_multiple_keeps_order_and_skips_failed_download(
        self, migrator, source, destination, target, staging_root
    ):
        source_id = source.add_record(
            "posts", {}, files={"1.png": b"one", "2.png": b"two", "3.png": b"three"}
        )
        source.download_errors["2.png"] = DownloadError("timed out")

        outcome = migrator.migrate_field(
            source, "posts", source_id, "gallery", AttachmentCardinality.MULTIPLE,
            ["3.png", "2.png", "1.png"], destination, target,
        )

        assert outcome.uploaded == ["3.png", "1.png"]
        assert [f["filename"] for f in outcome.failed] == ["2.png"]
        uploads = destination.calls_of("upload")
        assert len(uploads) == 1
        assert uploads[0][3] == "gallery"
        assert uploads[0][4] == ["3.png", "1.png"]
        assert uploads[0][5] == [b"three", b"one"]
        assert _staged_files(staging_root) == []

    def test_empty_payload_is_a_failure(self, migrator, source, destination, target):
        source_id = source.add_record("posts", {}, files={"a.png": b""})

        outcome = migrator.migrate_field(
            source, "posts", source_id, "image", AttachmentCardinality.SINGLE,
            ["a.png"], destination, target,
        )

        assert outcome.uploaded == []
        assert "Empty payload" in outcome.failed[0]["error"]
        assert destination.calls_of("upload") == []

    def test_no_upload_when_every_download_fails(self, migrator, source, destination, target):
        source_id = source.add_record("posts", {})

        outcome = migrator.migrate_field(
            source, "posts", source_id, "gallery", AttachmentCardinality.MULTIPLE,
            ["a.png", "b.png"], destination, target,
        )

        assert len(outcome.failed) == 2
        assert destination.calls_of("upload") == []

    def test_upload_failure_raises_and_cleans_up(
        self, migrator, source, destination, target, staging_root
    ):
        source_id = source.add_record("posts", {}, files={"a.png": b"A"})
        destination.upload_error = UploadError("too large", status_code=400)

        with pytest.raises(UploadError):
            migrator.migrate_field(
                source, "posts", source_id, "image", AttachmentCardinality.SINGLE,
                ["a.png"], destination, target,
            )

        assert _staged_files(staging_root) == []

    def test_single_field_with_several_names_uses_first(self, migrator, source, destination, target):
        source_id = source.add_record("posts", {}, files={"a.png": b"A", "b.png": b"B"})

        outcome = migrator.migrate_field(
            source, "posts", source_id, "image", AttachmentCardinality.SINGLE,
            ["a.png", "b.png"], destination, target,
        )

        assert outcome.uploaded == ["a.png"]
        assert len(source.calls_of("download")) == 1

    def test_reauthenticates_expired_sessions(self, migrator, source, destination, target):
        source_id = source.add_record("posts", {}, files={"a.png": b"A"})
        source.authenticated = False
        destination.authenticated = False
        source_auths, destination_auths = source.auth_count, destination.auth_count

        migrator.migrate_field(
            source, "posts", source_id, "image", AttachmentCardinality.SINGLE,
            ["a.png"], destination, target,
        )

        assert source.auth_count == source_auths + 1
        assert destination.auth_count == destination_auths + 1

    def test_unsafe_filename_sanitized(self, migrator, source, destination, target):
        source_id = source.add_record("posts", {}, files={"my file.png": b"A"})

        outcome = migrator.migrate_field(
            source, "posts", source_id, "image", AttachmentCardinality.SINGLE,
            ["my file.png"], destination, target,
        )

        assert outcome.uploaded == ["my_file.png"]


class TestMigrateRecord:

    def test_isolates_upload_failure_to_its_field(self, migrator, source, destination, target):
        source_id = source.add_record(
            "posts",
            {"image": "a.png", "gallery": ["b.png"]},
            files={"a.png": b"A", "b.png": b"B"},
        )
        record = Record(id=source_id, collection="posts", data=source.find("posts", source_id))

        calls = []

        def flaky_store(collection, record_id, field_name, paths):
            calls.append(field_name)
            if field_name == "image":
                raise UploadError("rejected", status_code=400)
            return type(destination).store_attachments(destination, collection, record_id, field_name, paths)

        destination.store_attachments = flaky_store

        outcomes = migrator.migrate_record(
            source, record, destination, target,
            {"image": AttachmentCardinality.SINGLE, "gallery": AttachmentCardinality.MULTIPLE},
        )

        assert calls == ["image", "gallery"]
        image, gallery = outcomes
        assert image.upload_error is not None
        assert image.failed == [{"filename": "a.png", "error": "rejected"}]
        assert gallery.uploaded == ["b.png"]

    def test_skips_absent_and_empty_fields(self, migrator, source, destination, target):
        source_id = source.add_record("posts", {"image": "", "title": "x"})
        record = Record(id=source_id, collection="posts", data=source.find("posts", source_id))

        outcomes = migrator.migrate_record(
            source, record, destination, target,
            {"image": AttachmentCardinality.SINGLE, "gallery": AttachmentCardinality.MULTIPLE},
        )

        assert outcomes == []
        assert source.calls_of("download") == []

    def test_unreadable_staged_file_isolated_to_its_field(self, migrator, source, destination, target):
        source_id = source.add_record(
            "posts",
            {"image": "a.png", "gallery": ["b.png"]},
            files={"a.png": b"A", "b.png": b"B"},
        )
        record = Record(id=source_id, collection="posts", data=source.find("posts", source_id))

        def store(collection, record_id, field_name, paths):
            if field_name == "image":
                raise PermissionError("cannot open staged file")
            return type(destination).store_attachments(destination, collection, record_id, field_name, paths)

        destination.store_attachments = store

        image, gallery = migrator.migrate_record(
            source, record, destination, target,
            {"image": AttachmentCardinality.SINGLE, "gallery": AttachmentCardinality.MULTIPLE},
        )

        assert image.failed == [{"filename": "a.png", "error": "cannot open staged file"}]
        assert gallery.uploaded == ["b.png"]

    def test_authentication_failure_propagates(self, migrator, source, destination, target):
        source_id = source.add_record("posts", {"image": "a.png"}, files={"a.png": b"A"})
        record = Record(id=source_id, collection="posts", data=source.find("posts", source_id))
        destination.upload_error = AuthenticationError("session revoked")

        with pytest.raises(AuthenticationError):
            migrator.migrate_record(
                source, record, destination, target, {"image": AttachmentCardinality.SINGLE}
            )
