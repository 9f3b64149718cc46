"""Video, audio and image conversion"""

from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Union

import ffmpeg

from ...core.config import Settings
from ...core.exceptions import BackendFailure
from ...core.logger import get_logger
from ...core.types import ConversionJob, FileCategory, Quality, QualitySettings
from ..capabilities import (
    CapabilitySet,
    parse_ffmpeg_formats,
    probe_command,
    probe_first_command,
    probe_module,
)
from ..classifier import CATEGORY_FORMATS
from .base import ConverterBackend, ConverterChain, run_blocking, run_command

logger = get_logger(__name__)

QUALITY_SETTINGS: Dict[Quality, QualitySettings] = {
    Quality.LOW: QualitySettings(
        crf=28, video_bitrate="500k", audio_bitrate="96k", jpeg_qscale=8, image_quality=60
    ),
    Quality.MEDIUM: QualitySettings(
        crf=23, video_bitrate="1000k", audio_bitrate="128k", jpeg_qscale=5, image_quality=80
    ),
    Quality.HIGH: QualitySettings(
        crf=18, video_bitrate="2000k", audio_bitrate="192k", jpeg_qscale=2, image_quality=95
    ),
}

VIDEO_FORMATS = frozenset(CATEGORY_FORMATS[FileCategory.VIDEO])
AUDIO_FORMATS = frozenset(CATEGORY_FORMATS[FileCategory.AUDIO])
IMAGE_FORMATS = frozenset(CATEGORY_FORMATS[FileCategory.IMAGE])

# Motion picture sources: still outputs take one frame, gif outputs are capped
MOTION_FORMATS = VIDEO_FORMATS

RAW_FORMATS = frozenset({
    ".cr2", ".arw", ".dng", ".raf", ".nef", ".rw2", ".crw", ".orf", ".srw", ".x3f",
    ".dcr", ".mrw", ".3fr", ".erf", ".mef", ".mos", ".nrw", ".pef", ".rwl", ".srf",
})
SPECIAL_FORMATS = frozenset({".heic", ".ico", ".psd", ".eps", ".ai"}) | RAW_FORMATS

STILL_FORMATS = frozenset({".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".webp"})

GIF_FILTER = "fps=10,scale=320:-1:flags=lanczos"
GIF_MAX_SECONDS = 10

# Output extension -> ffmpeg muxer names that can write it
FFMPEG_MUXERS: Dict[str, Sequence[str]] = {
    ".mp4": ("mp4",), ".m4v": ("ipod", "mp4"), ".avi": ("avi",), ".mov": ("mov",),
    ".mkv": ("matroska",), ".webm": ("webm",), ".flv": ("flv",), ".f4v": ("f4v", "mp4"),
    ".mpeg": ("mpeg",), ".mpg": ("mpeg",), ".wmv": ("asf",), ".3gp": ("3gp",),
    ".ts": ("mpegts",), ".mts": ("mpegts",), ".m2ts": ("mpegts",), ".ogv": ("ogg",),
    ".gif": ("gif",),
    ".mp3": ("mp3",), ".wav": ("wav",), ".aac": ("adts",), ".flac": ("flac",),
    ".ogg": ("ogg",), ".oga": ("oga", "ogg"), ".m4a": ("ipod", "mp4"), ".wma": ("asf",),
    ".aiff": ("aiff",), ".amr": ("amr",), ".opus": ("opus", "ogg"), ".ac3": ("ac3",),
    ".caf": ("caf",), ".voc": ("voc",), ".weba": ("webm",),
    ".jpg": ("image2",), ".jpeg": ("image2",), ".png": ("image2",), ".bmp": ("image2",),
    ".tiff": ("image2",), ".tif": ("image2",), ".webp": ("webp", "image2"),
    ".ico": ("ico",),
}
FFMPEG_IMAGE_INPUTS = frozenset({
    ".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".webp", ".gif", ".ico",
})

IMAGEMAGICK_READ = IMAGE_FORMATS | {".gif"}
IMAGEMAGICK_WRITE = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".tiff", ".tif", ".ico",
    ".heic", ".avif", ".psd", ".eps",
})
GRAPHICSMAGICK_READ = IMAGEMAGICK_READ - {".heic", ".avif"}
GRAPHICSMAGICK_WRITE = IMAGEMAGICK_WRITE - {".heic", ".avif"}

PILLOW_FORMAT_NAMES = {
    ".jpg": "JPEG", ".jpeg": "JPEG", ".png": "PNG", ".gif": "GIF", ".bmp": "BMP",
    ".webp": "WEBP", ".tiff": "TIFF", ".tif": "TIFF", ".ico": "ICO",
}
PILLOW_READ = frozenset(PILLOW_FORMAT_NAMES) | {".psd"}
PILLOW_WRITE = frozenset(PILLOW_FORMAT_NAMES)

ICO_MAX_SIZE = 256


def get_quality_settings(quality: Union[Quality, str, None]) -> QualitySettings:
    """Map a quality hint to encoder settings; unknown hints mean medium"""
    if not isinstance(quality, Quality):
        quality = Quality.parse(quality)
    return QUALITY_SETTINGS[quality]


def ffmpeg_writable_formats(capabilities: CapabilitySet) -> FrozenSet[str]:
    """Output extensions the probed ffmpeg build has a muxer for"""
    muxers = capabilities.formats_of("ffmpeg")
    return frozenset(
        ext for ext, names in FFMPEG_MUXERS.items()
        if any(name in muxers for name in names)
    )


def ffmpeg_output_options(
    input_format: str,
    output_format: str,
    quality: QualitySettings,
    relaxed: bool = False
) -> Dict[str, Any]:
    """
    Build ffmpeg output options for one conversion

    Args:
        input_format: Source extension
        output_format: Target extension
        quality: Encoder settings for the requested tier
        relaxed: Drop codec and container choices, keep only frame limits

    Returns:
        Keyword arguments for ffmpeg-python's output()
    """
    motion = input_format in MOTION_FORMATS
    options: Dict[str, Any] = {}

    if output_format in STILL_FORMATS:
        if motion:
            options["vframes"] = 1
        if relaxed:
            return options
        if output_format in (".jpg", ".jpeg"):
            options["q:v"] = quality.jpeg_qscale
            options["format"] = "image2"
        elif output_format == ".webp":
            options["quality"] = quality.image_quality
        else:
            options["format"] = "image2"
        return options

    if output_format == ".gif":
        if motion:
            options["vf"] = GIF_FILTER
            options["t"] = GIF_MAX_SECONDS
        return options

    if output_format in AUDIO_FORMATS and input_format in VIDEO_FORMATS:
        options["vn"] = None
    if relaxed:
        return options

    if output_format in (".mp4", ".mov", ".mkv", ".m4v"):
        options.update(vcodec="libx264", acodec="aac", crf=quality.crf)
        if output_format in (".mp4", ".mov"):
            options["format"] = output_format.lstrip(".")
    elif output_format == ".avi":
        options.update(
            vcodec="libx264", acodec="libmp3lame", video_bitrate=quality.video_bitrate
        )
    elif output_format == ".webm":
        options.update(
            vcodec="libvpx-vp9", acodec="libvorbis", crf=quality.crf, video_bitrate=0
        )
    elif output_format == ".mp3":
        options.update(acodec="libmp3lame", audio_bitrate=quality.audio_bitrate)
    elif output_format == ".aac":
        options.update(acodec="aac", audio_bitrate=quality.audio_bitrate, format="adts")
    elif output_format == ".m4a":
        options.update(acodec="aac", audio_bitrate=quality.audio_bitrate)
    elif output_format == ".wav":
        options["acodec"] = "pcm_s16le"
    elif output_format == ".flac":
        options["acodec"] = "flac"
    elif output_format in (".ogg", ".oga"):
        options.update(acodec="libvorbis", audio_bitrate=quality.audio_bitrate)
    elif output_format == ".opus":
        options.update(acodec="libopus", audio_bitrate=quality.audio_bitrate)
    return options


def build_ffmpeg_args(
    job: ConversionJob,
    executable: str = "ffmpeg",
    relaxed: bool = False
) -> List[str]:
    """Compile the full ffmpeg command line for a job"""
    quality = get_quality_settings(job.options.effective_quality)
    options = ffmpeg_output_options(job.input_format, job.output_format, quality, relaxed)
    stream = ffmpeg.input(str(job.input_path)).output(str(job.output_path), **options)
    return stream.compile(cmd=executable, overwrite_output=True)


def build_magick_args(job: ConversionJob) -> List[str]:
    """ImageMagick / GraphicsMagick convert arguments, without the executable"""
    quality = get_quality_settings(job.options.effective_quality)
    source = str(job.input_path)
    if job.input_format in MOTION_FORMATS and job.output_format != ".gif":
        source = f"{source}[0]"

    args = [source]
    if job.input_format == ".psd":
        args.append("-flatten")
    if job.output_format == ".ico":
        args.extend(["-resize", f"{ICO_MAX_SIZE}x{ICO_MAX_SIZE}"])
    args.extend(["-quality", str(quality.image_quality), str(job.output_path)])
    return args


def _ensure_output(backend: str, output_path: Path) -> Path:
    if not output_path.exists() or output_path.stat().st_size == 0:
        raise BackendFailure(backend, "no output was produced")
    return output_path


class FFmpegBackend(ConverterBackend):
    """Primary transcoder for the formats ffmpeg supports natively"""

    name = "ffmpeg"
    relaxed = False

    def _readable(self, input_format: str) -> bool:
        return (
            input_format in VIDEO_FORMATS
            or input_format in AUDIO_FORMATS
            or input_format in FFMPEG_IMAGE_INPUTS
        )

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        if job.output_format not in ffmpeg_writable_formats(capabilities):
            return False
        if not self._readable(job.input_format):
            return False
        return job.input_format not in SPECIAL_FORMATS and job.output_format not in SPECIAL_FORMATS

    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        executable = capabilities.tool("ffmpeg", "ffmpeg")
        args = build_ffmpeg_args(job, executable, relaxed=self.relaxed)
        await run_command(self.name, args, timeout=self.settings.backend_timeout_seconds)
        return _ensure_output(self.name, job.output_path)


class RelaxedFFmpegBackend(FFmpegBackend):
    """Last resort: plain ffmpeg without codec or container choices"""

    name = "ffmpeg-relaxed"
    relaxed = True

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        return (
            job.output_format in ffmpeg_writable_formats(capabilities)
            and self._readable(job.input_format)
        )


class ImageMagickBackend(ConverterBackend):
    """Image conversion through ImageMagick"""

    name = "imagemagick"
    default_command: Sequence[str] = ("magick",)
    readable = IMAGEMAGICK_READ
    writable = IMAGEMAGICK_WRITE

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        # Motion to gif stays with ffmpeg and its GIF_FILTER frame limits
        if job.output_format == ".gif" and job.input_format in MOTION_FORMATS:
            return False
        return job.input_format in self.readable and job.output_format in self.writable

    def command(self, capabilities: CapabilitySet) -> List[str]:
        return [capabilities.tool(self.name, self.default_command[0])]

    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        args = self.command(capabilities) + build_magick_args(job)
        await run_command(self.name, args, timeout=self.settings.backend_timeout_seconds)
        return _ensure_output(self.name, job.output_path)


class GraphicsMagickBackend(ImageMagickBackend):
    """Image conversion through GraphicsMagick"""

    name = "graphicsmagick"
    default_command = ("gm",)
    readable = GRAPHICSMAGICK_READ
    writable = GRAPHICSMAGICK_WRITE

    def command(self, capabilities: CapabilitySet) -> List[str]:
        return [capabilities.tool(self.name, "gm"), "convert"]


def save_with_pillow(input_path: Path, output_path: Path, output_format: str, quality: int) -> Path:
    """Re-encode a still image with Pillow"""
    from PIL import Image

    pillow_format = PILLOW_FORMAT_NAMES[output_format]
    with Image.open(input_path) as source:
        source.seek(0)
        image = source.copy()

    params: Dict[str, Any] = {}
    if pillow_format == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    if pillow_format in ("JPEG", "WEBP"):
        params["quality"] = quality
    if pillow_format == "ICO":
        image.thumbnail((ICO_MAX_SIZE, ICO_MAX_SIZE))
        params["sizes"] = [image.size]

    image.save(output_path, format=pillow_format, **params)
    return output_path


class PillowBackend(ConverterBackend):
    """In-process still image conversion"""

    name = "pillow"

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        return job.input_format in PILLOW_READ and job.output_format in PILLOW_WRITE

    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        quality = get_quality_settings(job.options.effective_quality)
        await run_blocking(
            self.name,
            save_with_pillow,
            job.input_path,
            job.output_path,
            job.output_format,
            quality.image_quality,
            timeout=self.settings.backend_timeout_seconds,
        )
        return _ensure_output(self.name, job.output_path)


class MediaConverter(ConverterChain):
    """Converter chain for one media category (video, audio or image)"""

    OUTPUT_SCOPE = {
        FileCategory.VIDEO: VIDEO_FORMATS | AUDIO_FORMATS | IMAGE_FORMATS,
        FileCategory.AUDIO: AUDIO_FORMATS,
        FileCategory.IMAGE: IMAGE_FORMATS,
    }

    def __init__(
        self,
        category: FileCategory,
        app_settings: Optional[Settings] = None,
        initial_capabilities: Optional[CapabilitySet] = None
    ):
        if category not in self.OUTPUT_SCOPE:
            raise ValueError(f"{category.value} is not a media category")
        self.category = category
        super().__init__([], app_settings, initial_capabilities)
        self.backends = [
            FFmpegBackend(self.settings),
            ImageMagickBackend(self.settings),
            GraphicsMagickBackend(self.settings),
            PillowBackend(self.settings),
            RelaxedFFmpegBackend(self.settings),
        ]

    async def probe(self) -> CapabilitySet:
        timeout = self.settings.probe_timeout_seconds
        backends = set()
        tools: Dict[str, str] = {}
        formats: Dict[str, FrozenSet[str]] = {}

        output = await probe_command(("ffmpeg", "-hide_banner", "-formats"), timeout=timeout)
        if output is not None:
            backends.update({"ffmpeg", "ffmpeg-relaxed"})
            tools["ffmpeg"] = tools["ffmpeg-relaxed"] = "ffmpeg"
            formats["ffmpeg"] = formats["ffmpeg-relaxed"] = parse_ffmpeg_formats(output)

        magick = await probe_first_command(
            (("magick", "-version"), ("convert", "-version")),
            timeout=timeout,
            expect="ImageMagick",
        )
        if magick:
            backends.add("imagemagick")
            tools["imagemagick"] = magick

        if await probe_command(("gm", "version"), timeout=timeout, expect="GraphicsMagick"):
            backends.add("graphicsmagick")
            tools["graphicsmagick"] = "gm"

        if probe_module("PIL"):
            backends.add("pillow")

        return CapabilitySet(
            backends=frozenset(backends), tools=tools, formats=formats, probed=True
        )

    def supported_input_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        readable = set()
        if capabilities.has("ffmpeg"):
            readable |= VIDEO_FORMATS | AUDIO_FORMATS | FFMPEG_IMAGE_INPUTS
        if capabilities.has("imagemagick"):
            readable |= IMAGEMAGICK_READ
        if capabilities.has("graphicsmagick"):
            readable |= GRAPHICSMAGICK_READ
        if capabilities.has("pillow"):
            readable |= PILLOW_READ
        return frozenset(CATEGORY_FORMATS[self.category]) & readable

    def supported_output_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        writable = set()
        if capabilities.has("ffmpeg"):
            writable |= ffmpeg_writable_formats(capabilities)
        if capabilities.has("imagemagick"):
            writable |= IMAGEMAGICK_WRITE
        if capabilities.has("graphicsmagick"):
            writable |= GRAPHICSMAGICK_WRITE
        if capabilities.has("pillow"):
            writable |= PILLOW_WRITE
        return self.OUTPUT_SCOPE[self.category] & writable
