"""
Outputs module for Jukebox.

This package contains output sinks that accept raw PCM for one track.
SoundDeviceSink is not imported here; create_output_sink() loads it on
demand so hosts without PortAudio can still use NullSink.
"""

from .base_sink import BaseSink
from .null_sink import NullSink
from .factory import create_output_sink, sink_factory_for

__all__ = [
    "BaseSink",
    "NullSink",
    "create_output_sink",
    "sink_factory_for",
]
