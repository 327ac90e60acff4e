"""
Live audio output sink backed by PortAudio (sounddevice).

Writes are queued to a bounded buffer and played by a writer thread that
owns the RawOutputStream. The device is opened lazily when the first
bytes arrive, which is when the sink reports open.
"""

import logging
import queue
import threading
from typing import Optional, Union

import sounddevice as sd

from jukebox.errors import SinkError, SINK_OPEN_FAILED, SINK_WRITE_FAILED
from jukebox.outputs.base_sink import BaseSink
from jukebox.playback_core.audio_format import AudioFormat

logger = logging.getLogger(__name__)

# How long blocked calls wait before re-checking for end()
_POLL_INTERVAL_SEC = 0.1


class SoundDeviceSink(BaseSink):
    """
    PortAudio output sink.

    Backpressure: write() blocks while max_pending_chunks are waiting, so
    the decoder pump runs at device pace instead of filling memory.
    """

    def __init__(
        self,
        audio_format: AudioFormat,
        device: Optional[Union[int, str]] = None,
        max_pending_chunks: int = 16,
    ):
        """
        Initialize sink.

        Args:
            audio_format: Format of the PCM bytes that will be written
            device: PortAudio output device index or name (None = default)
            max_pending_chunks: Chunks buffered ahead of the device
        """
        super().__init__(audio_format)
        self.device = device
        self._pending: "queue.Queue[bytes]" = queue.Queue(maxsize=max_pending_chunks)
        self._discard = threading.Event()
        self._end_requested = threading.Event()
        self._writer_thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    def write(self, data: bytes) -> None:
        if self._ended:
            self._reject_write_after_end()
            return
        self._ensure_writer()
        while True:
            try:
                self._pending.put(data, timeout=_POLL_INTERVAL_SEC)
                return
            except queue.Full:
                if self._ended:
                    # end() landed while we were waiting for room
                    self._reject_write_after_end()
                    return

    def end(self, drain: bool = True) -> None:
        if self._ended:
            if not drain:
                self._discard.set()
            return
        self._ended = True
        if not drain:
            self._discard.set()
        self._end_requested.set()
        with self._start_lock:
            started = self._writer_thread is not None
        if not started:
            # Device was never opened; nothing to drain
            self._emit_close()

    def _ensure_writer(self) -> None:
        with self._start_lock:
            if self._writer_thread is not None or self._ended:
                return
            self._writer_thread = threading.Thread(
                target=self._writer_loop,
                name="jukebox-sink-writer",
                daemon=True,
            )
            self._writer_thread.start()

    def _writer_loop(self) -> None:
        fmt = self.audio_format
        try:
            stream = sd.RawOutputStream(
                samplerate=fmt.sample_rate,
                channels=fmt.channels,
                dtype=fmt.sample_dtype,
                device=self.device,
            )
            stream.start()
        except Exception as e:
            logger.error(f"[SINK] Could not open output device={self.device} ({fmt}): {e}")
            self._ended = True
            self._emit_error(SinkError(f"Could not open output device: {e}", code=SINK_OPEN_FAILED))
            self._emit_close()
            return

        logger.info(f"[SINK] Opened output stream device={self.device} sr={fmt.sample_rate} ch={fmt.channels} dtype={fmt.sample_dtype}")
        self._emit_open()

        try:
            while not self._discard.is_set():
                try:
                    chunk = self._pending.get(timeout=_POLL_INTERVAL_SEC)
                except queue.Empty:
                    if self._end_requested.is_set():
                        break
                    continue
                stream.write(chunk)
        except Exception as e:
            logger.error(f"[SINK] Output stream write failed: {e}")
            self._ended = True
            self._emit_error(SinkError(f"Output stream write failed: {e}", code=SINK_WRITE_FAILED))
        finally:
            try:
                if self._discard.is_set():
                    stream.abort()
                else:
                    stream.stop()
                stream.close()
            except Exception as e:
                logger.warning(f"[SINK] Error closing output stream: {e}")
            self._drop_pending()
            self._emit_close()

    def _drop_pending(self) -> None:
        while True:
            try:
                self._pending.get_nowait()
            except queue.Empty:
                return
