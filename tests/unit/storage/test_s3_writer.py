# tests/unit/storage/test_s3_writer.py — v2
"""Tests for storage/s3_writer.py — in-memory S3 client stand-in."""

from __future__ import annotations

import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from peoplefinder.storage.s3_writer import S3Writer


def _missing(operation: str) -> ClientError:
    return ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, operation)


@pytest.fixture
def s3_objects() -> dict[str, bytes]:
    return {}


@pytest.fixture
def s3_writer(s3_objects):
    client = MagicMock()

    def put_object(Bucket, Key, Body, **kwargs):
        s3_objects[Key] = Body

    def get_object(Bucket, Key):
        if Key not in s3_objects:
            raise _missing("GetObject")
        return {"Body": io.BytesIO(s3_objects[Key])}

    def head_object(Bucket, Key):
        if Key not in s3_objects:
            raise _missing("HeadObject")
        return {}

    client.put_object.side_effect = put_object
    client.get_object.side_effect = get_object
    client.head_object.side_effect = head_object
    return S3Writer(bucket="artifacts", prefix="pf", client=client)


class TestS3Writer:
    @pytest.mark.asyncio
    async def test_write_then_read(self, s3_writer, s3_objects):
        await s3_writer.write("batch.json", '{"a": 1}')
        assert list(s3_objects) == ["pf/batch.json"]
        assert await s3_writer.read("batch.json") == b'{"a": 1}'
        assert await s3_writer.exists("batch.json") is True

    @pytest.mark.asyncio
    async def test_missing_object(self, s3_writer):
        assert await s3_writer.exists("nope.json") is False
        with pytest.raises(FileNotFoundError, match="s3://artifacts/pf/nope.json"):
            await s3_writer.read("nope.json")

    @pytest.mark.asyncio
    async def test_other_client_errors_propagate(self):
        client = MagicMock()
        client.head_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "no"}}, "HeadObject"
        )
        writer = S3Writer(bucket="artifacts", client=client)
        with pytest.raises(ClientError):
            await writer.exists("batch.json")

    def test_describe(self, s3_writer):
        assert s3_writer.describe("/x/y.json") == "s3://artifacts/pf/x/y.json"
