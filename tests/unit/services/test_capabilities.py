"""Tests for backend capability detection"""

import pytest
from unittest.mock import AsyncMock, patch

from fastfile.services.capabilities import (
    CapabilitySet,
    parse_ffmpeg_formats,
    probe_command,
    probe_first_command,
    probe_module,
)

FFMPEG_FORMATS_OUTPUT = """File formats:
 D. = Demuxing supported
 .E = Muxing supported
 --
 D  3dostr          3DO STR
  E 3g2             3GP2 (3GPP2 file format)
  E 3gp             3GP (3GPP file format)
 DE avi             AVI (Audio Video Interleaved)
 D  flac            raw FLAC
 DE gif             CompuServe Graphics Interchange Format (GIF)
  E image2          image2 sequence
 DE matroska,webm   Matroska / WebM
  E mp4             MP4 (MPEG-4 Part 14)
 DE mp3             MP3 (MPEG audio layer 3)
 Dd x11grab         X11 screen capture
"""


@pytest.mark.unit
class TestParseFfmpegFormats:
    """Muxer parsing from `ffmpeg -formats`"""

    def test_collects_muxers(self):
        muxers = parse_ffmpeg_formats(FFMPEG_FORMATS_OUTPUT)

        assert {"3gp", "avi", "gif", "image2", "matroska", "webm", "mp4", "mp3"} <= muxers

    def test_skips_demux_only_and_legend(self):
        muxers = parse_ffmpeg_formats(FFMPEG_FORMATS_OUTPUT)

        assert "flac" not in muxers
        assert "3dostr" not in muxers
        assert "x11grab" not in muxers
        assert "=" not in muxers

    def test_empty_output(self):
        assert parse_ffmpeg_formats("") == frozenset()


@pytest.mark.unit
class TestCapabilitySet:

    def test_queries(self):
        capabilities = CapabilitySet(
            backends=frozenset({"ffmpeg"}),
            tools={"ffmpeg": "/usr/bin/ffmpeg"},
            formats={"ffmpeg": frozenset({"mp4"})},
        )

        assert capabilities.has("ffmpeg")
        assert not capabilities.has("pillow")
        assert capabilities.tool("ffmpeg") == "/usr/bin/ffmpeg"
        assert capabilities.tool("pillow", "default") == "default"
        assert capabilities.formats_of("ffmpeg") == frozenset({"mp4"})
        assert capabilities.formats_of("pillow") == frozenset()

    def test_with_backends_returns_new_set(self):
        capabilities = CapabilitySet(backends=frozenset({"zip"}))
        extended = capabilities.with_backends("tar", "7z")

        assert extended.backends == frozenset({"zip", "tar", "7z"})
        assert capabilities.backends == frozenset({"zip"})

    def test_to_dict(self):
        capabilities = CapabilitySet(backends=frozenset({"tar", "zip"}), probed=True)

        assert capabilities.to_dict() == {"backends": ["tar", "zip"], "tools": {}, "probed": True}


@pytest.mark.unit
class TestProbes:

    @pytest.mark.asyncio
    async def test_missing_binary_is_absent(self):
        assert await probe_command(("definitely-not-a-real-tool-xyz", "--version")) is None

    @pytest.mark.asyncio
    async def test_probe_first_command_returns_first_answering(self):
        answers = {"magick": None, "convert": "Version: ImageMagick 6.9"}

        async def fake_probe(args, timeout=15.0, expect=None):
            return answers[args[0]]

        with patch("fastfile.services.capabilities.probe_command", AsyncMock(side_effect=fake_probe)):
            executable = await probe_first_command(
                (("magick", "-version"), ("convert", "-version")), expect="ImageMagick"
            )

        assert executable == "convert"

    def test_probe_module(self):
        assert probe_module("json") is True
        assert probe_module("definitely_not_a_real_module_xyz") is False
