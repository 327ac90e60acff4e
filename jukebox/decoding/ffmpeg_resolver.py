"""
FFmpeg binary resolution for Jukebox.

Decides which ffmpeg/ffprobe pair the player uses. Priority:
explicit override > native system install > bundled directory
(native and bundled swap places when prefer_native is False).

The result is cached for the lifetime of the resolver and only dropped by
clear_cache(). The resolver is passed into the player rather than being a
module-level singleton, so tests can hand the player a fake.
"""

import logging
import os
import shutil
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Optional, Union

from jukebox.errors import ResolutionError

logger = logging.getLogger(__name__)

NATIVE_INSTALL_HINT = (
    "Please install FFmpeg on your system using:\n"
    "- Ubuntu/Debian: sudo apt-get install ffmpeg\n"
    "- CentOS/RHEL: sudo yum install ffmpeg\n"
    "- macOS: brew install ffmpeg\n"
    "- Windows: Download from https://ffmpeg.org/download.html"
)


@dataclass(frozen=True)
class FFmpegPaths:
    """A resolved ffmpeg/ffprobe pair."""
    ffmpeg: str
    ffprobe: str
    source: str  # "override", "native" or "bundled"

    @property
    def is_native(self) -> bool:
        return self.source == "native"


@dataclass(frozen=True)
class ResolverOptions:
    """Options controlling binary resolution."""
    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None
    bundled_dir: Optional[str] = None
    prefer_native: bool = True
    force_native: bool = False
    force_bundled: bool = False


class FFmpegResolver:
    """
    Resolves and caches the ffmpeg/ffprobe configuration.

    Thread-safe: the player may resolve from a timer thread while the
    caller reconfigures from another.
    """

    def __init__(self, options: Optional[ResolverOptions] = None, **kwargs):
        """
        Initialize resolver.

        Args:
            options: ResolverOptions instance (default: all defaults)
            **kwargs: Individual ResolverOptions fields overriding ``options``
        """
        base = options or ResolverOptions()
        self._options = replace(base, **kwargs) if kwargs else base
        self._cached: Optional[FFmpegPaths] = None
        self._lock = threading.Lock()

    @property
    def options(self) -> ResolverOptions:
        return self._options

    def update_options(self, **kwargs) -> None:
        """Merge new options and drop the cached resolution."""
        with self._lock:
            self._options = replace(self._options, **kwargs)
            self._cached = None

    def clear_cache(self) -> None:
        """Forget the cached resolution; the next resolve() probes again."""
        with self._lock:
            self._cached = None
        logger.debug("[RESOLVER] Cache cleared")

    def resolve(self) -> FFmpegPaths:
        """
        Return a usable ffmpeg/ffprobe pair.

        Returns:
            FFmpegPaths (cached after the first successful call)

        Raises:
            ResolutionError: If no usable pair exists under the current options
        """
        with self._lock:
            if self._cached is not None:
                return self._cached
            paths = self._resolve_uncached(self._options)
            self._cached = paths
        logger.info(f"[RESOLVER] Using {paths.source} FFmpeg: ffmpeg={paths.ffmpeg}, ffprobe={paths.ffprobe}")
        return paths

    def get_availability(self) -> Dict[str, Union[bool, str]]:
        """
        Report which installations exist, without touching the cache.

        Returns:
            Dict with native_available, bundled_available and recommendation
        """
        native_available = self._find_native() is not None
        bundled_available = self._find_bundled(self._options.bundled_dir) is not None

        if native_available and bundled_available:
            recommendation = "Both native and bundled FFmpeg are available. Native is recommended for better compatibility."
        elif native_available:
            recommendation = "Only native FFmpeg is available. This is the recommended option."
        elif bundled_available:
            recommendation = "Only bundled FFmpeg is available. Consider installing native FFmpeg for better compatibility."
        else:
            recommendation = "No FFmpeg installation found. Please install FFmpeg on your system."

        return {
            "native_available": native_available,
            "bundled_available": bundled_available,
            "recommendation": recommendation,
        }

    def _resolve_uncached(self, options: ResolverOptions) -> FFmpegPaths:
        if options.force_native and options.force_bundled:
            raise ResolutionError("force_native and force_bundled are mutually exclusive")

        if options.ffmpeg_path or options.ffprobe_path:
            return self._resolve_override(options)

        native = self._find_native()
        bundled = self._find_bundled(options.bundled_dir)

        if options.force_native:
            if native is None:
                raise ResolutionError(f"Native FFmpeg not found. {NATIVE_INSTALL_HINT}")
            return native

        if options.force_bundled:
            if bundled is None:
                raise ResolutionError(
                    f"Bundled FFmpeg binaries not found in {options.bundled_dir!r}. "
                    "Consider using a native FFmpeg installation instead."
                )
            return bundled

        candidates = [native, bundled] if options.prefer_native else [bundled, native]
        for candidate in candidates:
            if candidate is not None:
                return candidate

        raise ResolutionError(
            "FFmpeg not found. Please install FFmpeg on your system "
            "or set a bundled directory containing ffmpeg and ffprobe."
        )

    def _resolve_override(self, options: ResolverOptions) -> FFmpegPaths:
        """Explicit paths win; a missing half falls back to the native binary."""
        resolved = {}
        for name, configured in (("ffmpeg", options.ffmpeg_path), ("ffprobe", options.ffprobe_path)):
            # shutil.which accepts both bare names and explicit paths
            path = shutil.which(configured or name)
            if path is None:
                raise ResolutionError(f"Configured {name} binary is not usable: {configured or name!r}")
            resolved[name] = path
        return FFmpegPaths(ffmpeg=resolved["ffmpeg"], ffprobe=resolved["ffprobe"], source="override")

    @staticmethod
    def _find_native() -> Optional[FFmpegPaths]:
        ffmpeg = shutil.which("ffmpeg")
        ffprobe = shutil.which("ffprobe")
        if ffmpeg and ffprobe:
            return FFmpegPaths(ffmpeg=ffmpeg, ffprobe=ffprobe, source="native")
        return None

    @staticmethod
    def _find_bundled(bundled_dir: Optional[str]) -> Optional[FFmpegPaths]:
        if not bundled_dir:
            return None
        suffix = ".exe" if os.name == "nt" else ""
        ffmpeg = Path(bundled_dir) / f"ffmpeg{suffix}"
        ffprobe = Path(bundled_dir) / f"ffprobe{suffix}"
        if _is_executable(str(ffmpeg)) and _is_executable(str(ffprobe)):
            return FFmpegPaths(ffmpeg=str(ffmpeg), ffprobe=str(ffprobe), source="bundled")
        return None


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)
