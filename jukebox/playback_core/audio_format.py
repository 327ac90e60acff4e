"""
Audio format model for Jukebox.

An AudioFormat is probed once per track and then used verbatim on both
sides of the pipe: it sizes the output sink and it tells ffmpeg what raw
PCM to produce. If the two disagree the device plays garbage.
"""

from dataclasses import dataclass


# bit depth -> (ffmpeg raw format, sounddevice dtype)
PCM_FORMATS = {
    8: ("u8", "uint8"),
    16: ("s16le", "int16"),
    24: ("s24le", "int24"),
    32: ("s32le", "int32"),
}

DEFAULT_BIT_DEPTH = 16


@dataclass(frozen=True)
class AudioFormat:
    """
    PCM format of one track.

    Attributes:
        channels: Number of interleaved channels
        sample_rate: Samples per second per channel
        bit_depth: Bits per sample (8, 16, 24 or 32)
    """
    channels: int
    sample_rate: int
    bit_depth: int = DEFAULT_BIT_DEPTH

    def __post_init__(self):
        if self.channels < 1:
            raise ValueError(f"Invalid channel count: {self.channels}")
        if self.sample_rate < 1:
            raise ValueError(f"Invalid sample rate: {self.sample_rate}")
        if self.bit_depth not in PCM_FORMATS:
            raise ValueError(
                f"Unsupported bit depth: {self.bit_depth} "
                f"(must be one of {sorted(PCM_FORMATS)})"
            )

    @property
    def ffmpeg_format(self) -> str:
        """Raw sample format name passed to ffmpeg's -f option."""
        return PCM_FORMATS[self.bit_depth][0]

    @property
    def sample_dtype(self) -> str:
        """Sample dtype name understood by sounddevice raw streams."""
        return PCM_FORMATS[self.bit_depth][1]

    @property
    def bytes_per_frame(self) -> int:
        """Bytes for one sample across all channels."""
        return self.channels * (self.bit_depth // 8)

    @property
    def bytes_per_second(self) -> int:
        return self.bytes_per_frame * self.sample_rate
