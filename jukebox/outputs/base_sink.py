"""
Base output sink for Jukebox.

A sink is the live end of the pipe: it accepts raw PCM bytes in the
track's AudioFormat and reports three lifecycle signals back to whoever
bound to it:

- open:  the device is open and the first bytes are on their way
- close: the sink has finished (drained or aborted) and released the device
- error: something went wrong; SinkError.code says what

close fires exactly once per sink, whether or not open ever did.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from jukebox.errors import SinkError, SINK_WRITE_AFTER_END
from jukebox.playback_core.audio_format import AudioFormat

logger = logging.getLogger(__name__)


class BaseSink(ABC):
    """
    Abstract base class for all output sinks.

    All sinks must implement write() and end().
    """

    def __init__(self, audio_format: AudioFormat):
        self.audio_format = audio_format
        self._on_open: Optional[Callable[[], None]] = None
        self._on_close: Optional[Callable[[], None]] = None
        self._on_error: Optional[Callable[[SinkError], None]] = None
        self._signal_lock = threading.Lock()
        self._opened = False
        self._closed = False
        self._ended = False

    def bind(
        self,
        on_open: Optional[Callable[[], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[SinkError], None]] = None,
    ) -> None:
        """Attach lifecycle callbacks. Must be called before the first write."""
        self._on_open = on_open
        self._on_close = on_close
        self._on_error = on_error

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def write(self, data: bytes) -> None:
        """
        Write raw PCM bytes to the sink.

        May block while the sink applies backpressure. Writing after end()
        reports a SINK_WRITE_AFTER_END error instead of raising.

        Args:
            data: PCM bytes, a whole number of frames in audio_format
        """
        ...

    @abstractmethod
    def end(self, drain: bool = True) -> None:
        """
        Signal that no more data will be written.

        Args:
            drain: If True, play what is already buffered before closing;
                   if False, discard it and close as soon as possible
        """
        ...

    def _reject_write_after_end(self) -> None:
        self._emit_error(SinkError("write after end", code=SINK_WRITE_AFTER_END))

    def _emit_open(self) -> None:
        with self._signal_lock:
            if self._opened or self._closed:
                return
            self._opened = True
        logger.debug(f"[SINK] {type(self).__name__} opened ({self.audio_format})")
        self._invoke(self._on_open)

    def _emit_close(self) -> None:
        with self._signal_lock:
            if self._closed:
                return
            self._closed = True
        logger.debug(f"[SINK] {type(self).__name__} closed")
        self._invoke(self._on_close)

    def _emit_error(self, error: SinkError) -> None:
        logger.debug(f"[SINK] {type(self).__name__} error: {error} (code={error.code})")
        self._invoke(self._on_error, error)

    @staticmethod
    def _invoke(callback, *args) -> None:
        # Sink threads have nobody to propagate to
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"[SINK] Error in sink callback: {e}", exc_info=True)
