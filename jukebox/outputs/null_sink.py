from jukebox.outputs.base_sink import BaseSink


class NullSink(BaseSink):
    """A sink that discards all audio. Useful for headless runs and tests."""

    def __init__(self, audio_format):
        super().__init__(audio_format)
        self.bytes_written = 0

    def write(self, data: bytes) -> None:
        if self._ended:
            self._reject_write_after_end()
            return
        self._emit_open()
        self.bytes_written += len(data)

    def end(self, drain: bool = True) -> None:
        if self._ended:
            return
        self._ended = True
        self._emit_close()
