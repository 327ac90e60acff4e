"""
ffprobe-based metadata probe.

Reads the first audio stream of a file and turns it into the AudioFormat
the sink and decoder are both configured with.
"""

import json
import logging
import subprocess
from typing import Any, Callable, Dict, Optional

from jukebox.decoding.ffmpeg_resolver import FFmpegPaths
from jukebox.errors import ProbeError
from jukebox.playback_core.audio_format import AudioFormat, DEFAULT_BIT_DEPTH, PCM_FORMATS

logger = logging.getLogger(__name__)


class FFprobeMetadataProbe:
    """
    Probe audio files with ffprobe.

    There is no timeout unless one is configured; a hung ffprobe stalls
    that track's Loading phase.
    """

    def __init__(self, paths_provider: Callable[[], FFmpegPaths], timeout: Optional[float] = None):
        """
        Initialize probe.

        Args:
            paths_provider: Callable returning the resolved FFmpegPaths
                            (typically FFmpegResolver.resolve)
            timeout: Optional ffprobe timeout in seconds
        """
        self._paths_provider = paths_provider
        self._timeout = timeout

    def probe(self, path: str) -> AudioFormat:
        """
        Probe the audio format of a file.

        Args:
            path: Path to the audio file

        Returns:
            AudioFormat of the first audio stream

        Raises:
            ProbeError: If ffprobe fails, its output is unusable, or the
                        file has no audio stream
        """
        ffprobe = self._paths_provider().ffprobe
        cmd = [
            ffprobe,
            "-v", "error",
            "-show_streams",
            "-of", "json",
            path,
        ]
        logger.debug(f"[PROBE] Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            raise ProbeError(f"ffprobe timed out after {self._timeout}s: {path}", path=path)
        except OSError as e:
            raise ProbeError(f"Could not run ffprobe for {path}: {e}", path=path) from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise ProbeError(f"ffprobe failed for {path}: {stderr or f'exit code {result.returncode}'}", path=path)

        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError(f"ffprobe returned invalid JSON for {path}: {e}", path=path) from e

        return parse_audio_stream(data, path)


def parse_audio_stream(data: Dict[str, Any], path: Optional[str] = None) -> AudioFormat:
    """
    Build an AudioFormat from ffprobe's ``-show_streams -of json`` output.

    Raises:
        ProbeError: If there is no usable audio stream
    """
    streams = data.get("streams") or []
    audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)
    if audio_stream is None:
        raise ProbeError("No audio stream found in file", path=path)

    try:
        channels = int(audio_stream.get("channels") or 0)
        sample_rate = int(audio_stream.get("sample_rate") or 0)
    except (TypeError, ValueError) as e:
        raise ProbeError(f"Unreadable audio stream parameters: {e}", path=path) from e

    if channels <= 0 or sample_rate <= 0:
        raise ProbeError(
            f"Audio stream has invalid parameters (channels={channels}, sample_rate={sample_rate})",
            path=path,
        )

    bit_depth = _bit_depth(audio_stream)
    fmt = AudioFormat(channels=channels, sample_rate=sample_rate, bit_depth=bit_depth)
    logger.info(f"[PROBE] Audio format detected for {path}: {fmt}")
    return fmt


def _bit_depth(stream: Dict[str, Any]) -> int:
    # Lossy codecs report 0 for bits_per_sample; decode those to 16-bit
    for key in ("bits_per_sample", "bits_per_raw_sample"):
        try:
            value = int(stream.get(key) or 0)
        except (TypeError, ValueError):
            continue
        if value in PCM_FORMATS:
            return value
    return DEFAULT_BIT_DEPTH
