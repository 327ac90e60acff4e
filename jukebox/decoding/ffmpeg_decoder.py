"""
FFmpeg decode supervisor for Jukebox.

Owns one short-lived ffmpeg process that decodes a single file to raw PCM
and pipes it into one output sink. Lifecycle is reported through two
callbacks:

- on_natural_end(): ffmpeg consumed the whole input and exited cleanly
- on_error(DecodeError): anything else, including the forced termination
  that always follows kill()

Exactly one of the two fires per started decoder.
"""

import logging
import os
import signal
import subprocess
import threading
from typing import Callable, List, Optional

from jukebox.errors import DecodeError
from jukebox.outputs.base_sink import BaseSink
from jukebox.playback_core.audio_format import AudioFormat

logger = logging.getLogger(__name__)


class FFmpegDecoder:
    """
    Decode one file with ffmpeg and stream the PCM into a sink.

    ARCHITECTURAL INVARIANT: the decoder has no timing responsibility.
    It reads as fast as ffmpeg produces; the sink's backpressure sets the
    pace.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        on_error: Optional[Callable[[DecodeError], None]] = None,
        on_natural_end: Optional[Callable[[], None]] = None,
        chunk_frames: int = 1024,
        kill_grace_seconds: float = 2.0,
    ):
        """
        Initialize FFmpeg decoder.

        Args:
            ffmpeg_path: ffmpeg executable to run
            on_error: Called with a DecodeError when decoding fails or is killed
            on_natural_end: Called when the whole input was decoded
            chunk_frames: PCM frames per pipe read (default: 1024)
            kill_grace_seconds: Time to wait after SIGTERM before SIGKILL
        """
        self.ffmpeg_path = ffmpeg_path
        self.on_error = on_error
        self.on_natural_end = on_natural_end
        self.chunk_frames = chunk_frames
        self.kill_grace_seconds = kill_grace_seconds

        self.path: Optional[str] = None
        self.proc: Optional[subprocess.Popen] = None
        self._sink: Optional[BaseSink] = None
        self._killed = threading.Event()
        self._finished = False
        self._finish_lock = threading.Lock()
        self._pump_thread: Optional[threading.Thread] = None
        self._stderr_thread: Optional[threading.Thread] = None

        # Keep the last few stderr lines for error messages
        self._stderr_tail: List[str] = []
        self._stderr_tail_max_lines = 20

    @property
    def killed(self) -> bool:
        return self._killed.is_set()

    @property
    def running(self) -> bool:
        return self.proc is not None and self.proc.poll() is None

    def build_command(self, path: str, audio_format: AudioFormat) -> List[str]:
        """ffmpeg command decoding path to raw PCM in audio_format on stdout."""
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostdin",
            "-loglevel", "error",
            "-i", path,
            "-vn",
            "-f", audio_format.ffmpeg_format,
            "-ac", str(audio_format.channels),
            "-ar", str(audio_format.sample_rate),
            "-",
        ]

    def start(self, path: str, audio_format: AudioFormat, sink: BaseSink) -> None:
        """
        Launch ffmpeg and start piping its output into sink. Non-blocking.

        Args:
            path: Audio file to decode
            audio_format: Output PCM format (must match the sink's)
            sink: Sink receiving the PCM

        Raises:
            DecodeError: If already started or ffmpeg cannot be launched
        """
        if self.proc is not None:
            raise DecodeError("Decoder already started")

        self.path = path
        self._sink = sink
        cmd = self.build_command(path, audio_format)
        logger.debug(f"[DECODER] Running ffmpeg: {' '.join(cmd)}")

        try:
            # New session isolates ffmpeg from Ctrl-C sent to the parent and
            # lets kill() signal the whole process group
            self.proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                start_new_session=(os.name == "posix"),
            )
        except OSError as e:
            raise DecodeError(f"Could not launch ffmpeg ({self.ffmpeg_path}): {e}") from e

        logger.info(f"[DECODER] FFmpeg started (pid={self.proc.pid}): {path}")

        self._stderr_thread = threading.Thread(
            target=self._stderr_drain,
            args=(self.proc,),
            name="jukebox-ffmpeg-stderr",
            daemon=True,
        )
        self._stderr_thread.start()

        bytes_per_read = self.chunk_frames * audio_format.bytes_per_frame
        self._pump_thread = threading.Thread(
            target=self._pump,
            args=(self.proc, sink, bytes_per_read, audio_format.bytes_per_frame),
            name="jukebox-ffmpeg-pump",
            daemon=True,
        )
        self._pump_thread.start()

    def kill(self) -> None:
        """
        Forcefully terminate ffmpeg. Never blocks the caller.

        The process group gets SIGTERM, then SIGKILL if it is still alive
        after kill_grace_seconds. The pump thread then reports a forced
        DecodeError. Idempotent.
        """
        if self._killed.is_set():
            return
        self._killed.set()

        proc = self.proc
        if proc is None or proc.poll() is not None:
            logger.debug(f"[DECODER] Kill requested but ffmpeg is not running ({self.path})")
            return

        threading.Thread(
            target=self._terminate,
            args=(proc,),
            name="jukebox-ffmpeg-kill",
            daemon=True,
        ).start()

    def _terminate(self, proc: subprocess.Popen) -> None:
        try:
            self._signal(proc, signal.SIGTERM)
            logger.info(f"[DECODER] FFmpeg SIGTERM sent (pid={proc.pid})")
            try:
                proc.wait(timeout=self.kill_grace_seconds)
                logger.debug(f"[DECODER] FFmpeg exited after SIGTERM (pid={proc.pid})")
                return
            except subprocess.TimeoutExpired:
                logger.warning(f"[DECODER] FFmpeg SIGKILL sent (timeout exceeded, pid={proc.pid})")
                self._signal(proc, signal.SIGKILL if hasattr(signal, "SIGKILL") else signal.SIGTERM)
                try:
                    proc.wait(timeout=1)
                except subprocess.TimeoutExpired:
                    logger.error(f"[DECODER] FFmpeg did not exit after SIGKILL (pid={proc.pid})")
        except ProcessLookupError:
            logger.debug(f"[DECODER] FFmpeg process already exited (pid={proc.pid})")
        except OSError as e:
            logger.error(f"[DECODER] Error killing FFmpeg process (pid={proc.pid}): {e}", exc_info=True)

    @staticmethod
    def _signal(proc: subprocess.Popen, sig: int) -> None:
        if os.name == "posix":
            os.killpg(os.getpgid(proc.pid), sig)
        elif sig == signal.SIGTERM:
            proc.terminate()
        else:
            proc.kill()

    def _pump(self, proc: subprocess.Popen, sink: BaseSink, bytes_per_read: int, bytes_per_frame: int) -> None:
        """
        Copy ffmpeg stdout into the sink, then report how decoding ended.

        Only whole PCM frames are written; a trailing partial frame at EOF
        is dropped.
        """
        assert proc.stdout is not None
        buffer = bytearray()
        sink_gone = False
        read_error: Optional[Exception] = None

        try:
            while not self._killed.is_set():
                data = proc.stdout.read(bytes_per_read)
                if not data:
                    break
                buffer.extend(data)
                usable = len(buffer) - (len(buffer) % bytes_per_frame)
                if usable:
                    sink.write(bytes(buffer[:usable]))
                    del buffer[:usable]
                if sink.ended and not self._killed.is_set():
                    # The sink went away underneath us and already reported why
                    sink_gone = True
                    break
        except (OSError, ValueError) as e:
            read_error = e
        finally:
            try:
                proc.stdout.close()
            except OSError:
                pass

        if sink_gone and proc.poll() is None:
            self._terminate(proc)
        returncode = proc.wait()
        if self._stderr_thread is not None:
            self._stderr_thread.join(timeout=1.0)

        if self._killed.is_set():
            self._finish_error(DecodeError(
                "ffmpeg was killed",
                forced=True,
                returncode=returncode,
            ))
        elif sink_gone:
            self._finish_error(DecodeError(
                "Output sink ended before decoding finished",
                returncode=returncode,
            ))
        elif read_error is not None:
            self._finish_error(DecodeError(
                f"Error reading ffmpeg output: {read_error}",
                returncode=returncode,
                stderr_tail=self.stderr_tail,
            ))
        elif returncode != 0:
            tail = self.stderr_tail
            self._finish_error(DecodeError(
                f"ffmpeg exited with code {returncode}" + (f": {tail}" if tail else ""),
                returncode=returncode,
                stderr_tail=tail,
            ))
        else:
            logger.info(f"[DECODER] FFmpeg finished processing: {self.path}")
            self._finish_natural_end()
            sink.end(drain=True)

    def _finish_error(self, error: DecodeError) -> None:
        with self._finish_lock:
            if self._finished:
                return
            self._finished = True
        if error.forced:
            logger.debug(f"[DECODER] Forced termination reported: {self.path}")
        else:
            logger.warning(f"[DECODER] Decoding failed for {self.path}: {error}")
        self._invoke(self.on_error, error)

    def _finish_natural_end(self) -> None:
        with self._finish_lock:
            if self._finished:
                return
            self._finished = True
        self._invoke(self.on_natural_end)

    @staticmethod
    def _invoke(callback, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"[DECODER] Error in decoder callback: {e}", exc_info=True)

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    def _stderr_drain(self, proc: subprocess.Popen) -> None:
        """Log ffmpeg stderr with an [FFMPEG] prefix until it closes."""
        if proc.stderr is None:
            return
        try:
            for line in iter(proc.stderr.readline, b""):
                decoded_line = line.decode(errors="ignore").rstrip()
                if not decoded_line:
                    continue
                if self._killed.is_set():
                    # Noise from a process we are tearing down
                    logger.debug(f"[FFMPEG] {decoded_line}")
                else:
                    logger.warning(f"[FFMPEG] {decoded_line}")
                self._stderr_tail.append(decoded_line)
                if len(self._stderr_tail) > self._stderr_tail_max_lines:
                    del self._stderr_tail[0]
        except (OSError, ValueError) as e:
            logger.debug(f"[FFMPEG] Stderr read error (likely closed): {e}")
        finally:
            try:
                proc.stderr.close()
            except OSError:
                pass
