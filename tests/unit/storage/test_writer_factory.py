# tests/unit/storage/test_writer_factory.py — v2
"""Tests for the local artifact writer and the writer factory."""

from __future__ import annotations

import pytest

from peoplefinder.config.settings import Settings
from peoplefinder.storage.base_output_writer import BaseArtifactWriter
from peoplefinder.storage.local_writer import LocalWriter
from peoplefinder.storage.s3_writer import S3Writer
from peoplefinder.storage.writer_factory import create_writer


class TestLocalWriter:
    @pytest.mark.asyncio
    async def test_write_creates_parents(self, tmp_path):
        writer = LocalWriter(tmp_path)
        await writer.write("data/out.json", "[]")
        assert (tmp_path / "data" / "out.json").read_text() == "[]"
        assert await writer.read("data/out.json") == b"[]"
        assert not (tmp_path / "data" / ".out.json.tmp").exists()

    @pytest.mark.asyncio
    async def test_overwrite(self, tmp_path):
        writer = LocalWriter(tmp_path)
        await writer.write("a.json", b"1")
        await writer.write("a.json", b"2")
        assert await writer.read("a.json") == b"2"

    @pytest.mark.asyncio
    async def test_missing(self, tmp_path):
        writer = LocalWriter(tmp_path)
        assert await writer.exists("none.json") is False
        with pytest.raises(FileNotFoundError):
            await writer.read("none.json")

    def test_without_base_uses_path_as_given(self, tmp_path):
        target = tmp_path / "x.json"
        assert LocalWriter().describe(str(target)) == str(target)


class TestCreateWriter:
    def test_local_default(self):
        writer = create_writer(Settings(_env_file=None))
        assert isinstance(writer, LocalWriter)
        assert isinstance(writer, BaseArtifactWriter)

    def test_s3(self):
        writer = create_writer(Settings(
            _env_file=None,
            artifact_writer="s3",
            artifact_s3_bucket="artifacts",
            artifact_s3_region="us-east-1",
        ))
        assert isinstance(writer, S3Writer)
        assert writer.describe("a.json") == "s3://artifacts/peoplefinder/a.json"
