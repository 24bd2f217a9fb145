from unittest import mock

import pytest
from botocore.exceptions import ClientError

from core.storage import (
    LocalObjectStorage,
    ObjectNotFound,
    ObjectStorageError,
    S3ObjectStorage,
    VersionConflict,
    content_version,
)


def test_local_write_read_head(storage):
    version = storage.write("excel", "users/u1/a.xlsx", b"abc")
    assert version == content_version(b"abc")
    assert storage.read_bytes("excel", "users/u1/a.xlsx") == b"abc"
    info = storage.head_object("excel", "users/u1/a.xlsx")
    assert info.size == 3
    assert info.version == version


def test_local_missing_objects(storage):
    with pytest.raises(ObjectNotFound):
        storage.read_bytes("excel", "nope.xlsx")
    with pytest.raises(ObjectNotFound):
        storage.delete("excel", "nope.xlsx")
    assert not storage.exists("excel", "nope.xlsx")


def test_local_rejects_traversal(storage):
    with pytest.raises(ObjectStorageError):
        storage.write("excel", "../escape.txt", b"x")


def test_local_list_by_prefix(storage):
    storage.write("excel", "users/u1/a.xlsx", b"1")
    storage.write("excel", "users/u1/b.xlsx", b"2")
    storage.write("excel", "users/u2/c.xlsx", b"3")
    assert storage.list_objects("excel", "users/u1/") == ["users/u1/a.xlsx", "users/u1/b.xlsx"]
    assert storage.list_objects("missing-bucket", "") == []


def test_local_compare_and_swap(storage):
    first = storage.write("excel", "k.xlsx", b"one")
    storage.write("excel", "k.xlsx", b"two", expected_version=first)
    with pytest.raises(VersionConflict):
        storage.write("excel", "k.xlsx", b"three", expected_version=first)


def test_update_requires_existing_object(storage):
    with pytest.raises(ObjectNotFound):
        storage.update("excel", "new.xlsx", b"x")


def test_local_public_url(storage, tmp_path):
    storage.write("excel", "master.xlsx", b"x")
    assert storage.public_url("excel", "master.xlsx") == "http://files.test/excel/master.xlsx"
    with pytest.raises(ObjectStorageError):
        LocalObjectStorage(tmp_path).public_url("excel", "master.xlsx")


def test_s3_conditional_put_maps_precondition_failure():
    aws = mock.Mock()
    aws.put_object.side_effect = ClientError({"Error": {"Code": "PreconditionFailed"}}, "PutObject")
    s3 = S3ObjectStorage(aws)
    with pytest.raises(VersionConflict):
        s3.write("excel", "k.xlsx", b"x", expected_version="abc")
    assert aws.put_object.call_args.kwargs["IfMatch"] == '"abc"'


def test_s3_missing_key():
    aws = mock.Mock()
    aws.head_object.side_effect = ClientError({"Error": {"Code": "404"}}, "HeadObject")
    with pytest.raises(ObjectNotFound):
        S3ObjectStorage(aws).head_object("excel", "k.xlsx")


def test_s3_write_returns_etag():
    aws = mock.Mock()
    aws.put_object.return_value = {"ETag": '"etag123"'}
    assert S3ObjectStorage(aws).write("excel", "k.xlsx", "text") == "etag123"
    assert aws.put_object.call_args.kwargs["Body"] == b"text"
