from typing import Callable, Optional, Union

from jukebox.outputs.base_sink import BaseSink
from jukebox.outputs.null_sink import NullSink
from jukebox.playback_core.audio_format import AudioFormat

SINK_MODES = ("sounddevice", "null")


def create_output_sink(
    audio_format: AudioFormat,
    mode: str = "sounddevice",
    device: Optional[Union[int, str]] = None,
) -> BaseSink:
    """
    Create an output sink for one track.

    Args:
        audio_format: Format the sink must be sized to
        mode: "sounddevice" (live device) | "null" (discard audio)
        device: Output device for the sounddevice mode

    Returns:
        BaseSink instance configured for audio_format

    Raises:
        ValueError: If mode is unknown
    """
    mode = mode.lower()

    if mode == "null":
        return NullSink(audio_format)

    if mode == "sounddevice":
        # Imported here so headless installs without PortAudio can use the null sink
        from jukebox.outputs.sounddevice_sink import SoundDeviceSink
        return SoundDeviceSink(audio_format, device=device)

    raise ValueError(f"Unknown output sink mode: {mode} (must be one of {', '.join(SINK_MODES)})")


def sink_factory_for(mode: str = "sounddevice", device: Optional[Union[int, str]] = None) -> Callable[[AudioFormat], BaseSink]:
    """Bind mode and device into the one-argument factory the player expects."""
    def factory(audio_format: AudioFormat) -> BaseSink:
        return create_output_sink(audio_format, mode=mode, device=device)
    return factory
