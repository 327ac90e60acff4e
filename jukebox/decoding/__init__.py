"""
Decoding module for Jukebox.

This package locates the ffmpeg/ffprobe binaries, probes track metadata
and supervises the ffmpeg process that decodes a track to PCM.
"""

from .ffmpeg_resolver import FFmpegPaths, FFmpegResolver, ResolverOptions
from .metadata_probe import FFprobeMetadataProbe
from .ffmpeg_decoder import FFmpegDecoder

__all__ = [
    "FFmpegPaths",
    "FFmpegResolver",
    "ResolverOptions",
    "FFprobeMetadataProbe",
    "FFmpegDecoder",
]
