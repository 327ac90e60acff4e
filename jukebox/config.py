"""
Configuration management for Jukebox.

Reads configuration from a .env file and environment variables with
sensible defaults.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from jukebox.decoding.ffmpeg_resolver import ResolverOptions
from jukebox.outputs.factory import SINK_MODES

# Default .env file location
DEFAULT_ENV_FILE = Path("/etc/jukebox/jukebox.env")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def _load_env_file():
    """Load environment variables from .env file if it exists."""
    env_file = os.getenv("JUKEBOX_ENV_FILE", str(DEFAULT_ENV_FILE))
    env_path = Path(env_file)

    if env_path.exists():
        load_dotenv(env_path, override=False)  # Don't override existing env vars


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _get_float(name: str, default: str) -> float:
    value_str = os.getenv(name, default)
    try:
        return float(value_str)
    except ValueError:
        raise ValueError(f"Invalid {name}: {value_str} (must be a number)")


def _get_optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value == "":
        return None
    return value


@dataclass
class PlayerConfig:
    """Player configuration loaded from .env file and environment variables."""

    # FFmpeg resolution
    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None
    bundled_dir: Optional[str] = None
    prefer_native: bool = True
    force_native: bool = False
    force_bundled: bool = False

    # Output
    output_sink_mode: str = "sounddevice"
    output_device: Optional[Union[int, str]] = None

    # Timing (seconds)
    progress_interval: float = 1.0
    skip_delay: float = 0.1
    advance_delay: float = 0.5
    probe_timeout: Optional[float] = None  # None = wait for ffprobe indefinitely
    kill_grace: float = 2.0

    # Logging
    log_level: str = "INFO"

    @classmethod
    def load_config(cls) -> "PlayerConfig":
        """
        Load configuration from environment variables.

        Returns:
            PlayerConfig instance with loaded values

        Raises:
            ValueError: If configuration is invalid
        """
        # Load .env file first (if it exists)
        _load_env_file()

        probe_timeout_str = os.getenv("JUKEBOX_PROBE_TIMEOUT", "")
        probe_timeout = _get_float("JUKEBOX_PROBE_TIMEOUT", "0") if probe_timeout_str else None

        config = cls(
            ffmpeg_path=_get_optional("JUKEBOX_FFMPEG_PATH"),
            ffprobe_path=_get_optional("JUKEBOX_FFPROBE_PATH"),
            bundled_dir=_get_optional("JUKEBOX_BUNDLED_DIR"),
            prefer_native=_get_bool("JUKEBOX_PREFER_NATIVE", True),
            force_native=_get_bool("JUKEBOX_FORCE_NATIVE", False),
            force_bundled=_get_bool("JUKEBOX_FORCE_BUNDLED", False),
            output_sink_mode=os.getenv("JUKEBOX_OUTPUT_SINK_MODE", "sounddevice").lower(),
            output_device=_parse_device(_get_optional("JUKEBOX_OUTPUT_DEVICE")),
            progress_interval=_get_float("JUKEBOX_PROGRESS_INTERVAL", "1.0"),
            skip_delay=_get_float("JUKEBOX_SKIP_DELAY", "0.1"),
            advance_delay=_get_float("JUKEBOX_ADVANCE_DELAY", "0.5"),
            probe_timeout=probe_timeout,
            kill_grace=_get_float("JUKEBOX_KILL_GRACE", "2.0"),
            log_level=os.getenv("JUKEBOX_LOG_LEVEL", "INFO").upper(),
        )

        # Validate configuration
        config.validate()

        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if self.force_native and self.force_bundled:
            raise ValueError("JUKEBOX_FORCE_NATIVE and JUKEBOX_FORCE_BUNDLED are mutually exclusive")

        if self.output_sink_mode not in SINK_MODES:
            raise ValueError(
                f"Invalid output sink mode: {self.output_sink_mode} "
                f"(must be one of {', '.join(SINK_MODES)})"
            )

        if self.progress_interval <= 0:
            raise ValueError(f"Invalid progress interval: {self.progress_interval} (must be > 0)")

        for name in ("skip_delay", "advance_delay", "kill_grace"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"Invalid {name}: {value} (must be >= 0)")

        if self.probe_timeout is not None and self.probe_timeout <= 0:
            raise ValueError(f"Invalid probe timeout: {self.probe_timeout} (must be > 0)")

        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {self.log_level}")

    def resolver_options(self) -> ResolverOptions:
        return ResolverOptions(
            ffmpeg_path=self.ffmpeg_path,
            ffprobe_path=self.ffprobe_path,
            bundled_dir=self.bundled_dir,
            prefer_native=self.prefer_native,
            force_native=self.force_native,
            force_bundled=self.force_bundled,
        )


def _parse_device(value: Optional[str]) -> Optional[Union[int, str]]:
    # PortAudio devices are addressed by index or by (partial) name
    if value is None:
        return None
    return int(value) if value.isdigit() else value


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging the same way for every entry point."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
