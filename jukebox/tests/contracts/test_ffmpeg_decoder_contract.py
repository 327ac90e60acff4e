"""
Contract tests for FFmpegDecoder.

- Command line matches the probed AudioFormat
- PCM is piped into the sink in whole frames
- Exactly one terminal callback: natural end or error
- kill() yields a forced DecodeError, never a natural end
"""

import io
import signal
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from jukebox.decoding.ffmpeg_decoder import FFmpegDecoder
from jukebox.errors import DecodeError
from jukebox.outputs.null_sink import NullSink
from jukebox.playback_core.audio_format import AudioFormat


class FakeProcess:
    """Stand-in for subprocess.Popen over in-memory pipes."""

    def __init__(self, stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0):
        self.stdout = io.BytesIO(stdout)
        self.stderr = io.BytesIO(stderr)
        self.returncode = returncode
        self.pid = 4242

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        return self.returncode


class Outcome:
    """Collects the decoder's terminal callbacks."""

    def __init__(self):
        self.errors = []
        self.natural_ends = 0

    def on_error(self, error):
        self.errors.append(error)

    def on_natural_end(self):
        self.natural_ends += 1


def run_decoder(process, audio_format, sink, outcome, **kwargs):
    decoder = FFmpegDecoder(
        ffmpeg_path="/usr/bin/ffmpeg",
        on_error=outcome.on_error,
        on_natural_end=outcome.on_natural_end,
        **kwargs,
    )
    with patch("jukebox.decoding.ffmpeg_decoder.subprocess.Popen", return_value=process) as popen:
        decoder.start("/music/a.flac", audio_format, sink)
    decoder._pump_thread.join(timeout=5)
    assert not decoder._pump_thread.is_alive()
    return decoder, popen


class TestCommand:
    """Tests for the ffmpeg invocation."""

    def test_command_matches_audio_format(self, mono_24bit_format):
        """ffmpeg MUST be told to emit raw PCM in exactly the probed format."""
        decoder = FFmpegDecoder(ffmpeg_path="/usr/bin/ffmpeg")

        assert decoder.build_command("/music/a.flac", mono_24bit_format) == [
            "/usr/bin/ffmpeg", "-hide_banner", "-nostdin", "-loglevel", "error",
            "-i", "/music/a.flac", "-vn",
            "-f", "s24le", "-ac", "1", "-ar", "48000",
            "-",
        ]

    def test_start_launches_process_with_pipes(self, cd_format):
        outcome = Outcome()
        decoder, popen = run_decoder(FakeProcess(), cd_format, NullSink(cd_format), outcome)

        args, kwargs = popen.call_args
        assert args[0] == decoder.build_command("/music/a.flac", cd_format)
        assert kwargs["stdout"] == subprocess.PIPE
        assert kwargs["stderr"] == subprocess.PIPE
        assert kwargs["stdin"] == subprocess.DEVNULL

    def test_start_twice_raises(self, cd_format):
        decoder, _ = run_decoder(FakeProcess(), cd_format, NullSink(cd_format), Outcome())

        with pytest.raises(DecodeError, match="already started"):
            decoder.start("/music/b.flac", cd_format, NullSink(cd_format))

    def test_launch_failure_raises_decode_error(self, cd_format):
        decoder = FFmpegDecoder(ffmpeg_path="/missing/ffmpeg")
        with patch("jukebox.decoding.ffmpeg_decoder.subprocess.Popen", side_effect=FileNotFoundError("ffmpeg")):
            with pytest.raises(DecodeError, match="Could not launch ffmpeg"):
                decoder.start("/music/a.flac", cd_format, NullSink(cd_format))


class TestNaturalEnd:
    """Tests for a clean decode."""

    def test_pipes_whole_frames_then_reports_natural_end(self, cd_format):
        """A clean exit MUST report natural end once and end the sink; partial frames are dropped."""
        sink = NullSink(cd_format)
        closes = []
        sink.bind(on_close=lambda: closes.append(True))
        outcome = Outcome()

        run_decoder(FakeProcess(stdout=b"\x01" * 10002), cd_format, sink, outcome, chunk_frames=256)

        assert sink.bytes_written == 10000
        assert outcome.natural_ends == 1
        assert outcome.errors == []
        assert sink.ended
        assert closes == [True]


class TestErrors:
    """Tests for decode failures."""

    def test_nonzero_exit_reports_error_with_stderr_tail(self, cd_format):
        """A non-zero exit MUST report one DecodeError carrying ffmpeg's stderr."""
        outcome = Outcome()
        process = FakeProcess(stderr=b"Invalid data found when processing input\n", returncode=1)

        run_decoder(process, cd_format, NullSink(cd_format), outcome)

        assert outcome.natural_ends == 0
        assert len(outcome.errors) == 1
        error = outcome.errors[0]
        assert error.returncode == 1
        assert not error.forced
        assert "Invalid data found" in error.stderr_tail

    def test_sink_gone_reports_error(self, cd_format):
        """A sink that ends underneath the decoder MUST produce a non-forced error."""
        sink = NullSink(cd_format)
        sink.end()
        outcome = Outcome()

        run_decoder(FakeProcess(stdout=b"\x00" * 4096), cd_format, sink, outcome)

        assert len(outcome.errors) == 1
        assert not outcome.errors[0].forced
        assert outcome.natural_ends == 0

    def test_callback_exception_is_contained(self, cd_format):
        def explode():
            raise RuntimeError("listener bug")

        decoder = FFmpegDecoder(on_natural_end=explode)
        with patch("jukebox.decoding.ffmpeg_decoder.subprocess.Popen", return_value=FakeProcess()):
            decoder.start("/music/a.flac", cd_format, NullSink(cd_format))
        decoder._pump_thread.join(timeout=5)

        assert not decoder._pump_thread.is_alive()


class TestKill:
    """Tests for kill()."""

    def test_kill_during_decode_reports_forced_error_only(self, cd_format):
        """After kill() exactly one forced DecodeError MUST follow and natural end MUST NOT."""
        outcome = Outcome()
        holder = {}

        class KillingSink(NullSink):
            def write(self, data):
                super().write(data)
                holder["decoder"].kill()

        decoder = FFmpegDecoder(on_error=outcome.on_error, on_natural_end=outcome.on_natural_end, chunk_frames=16)
        holder["decoder"] = decoder
        process = FakeProcess(stdout=b"\x00" * 8192, returncode=-15)
        with patch("jukebox.decoding.ffmpeg_decoder.subprocess.Popen", return_value=process):
            decoder.start("/music/a.flac", cd_format, KillingSink(cd_format))
        decoder._pump_thread.join(timeout=5)

        assert decoder.killed
        assert outcome.natural_ends == 0
        assert len(outcome.errors) == 1
        assert outcome.errors[0].forced

    def test_kill_is_idempotent(self):
        decoder = FFmpegDecoder()
        decoder.kill()
        decoder.kill()

        assert decoder.killed

    def test_terminate_escalates_to_sigkill(self):
        """A process ignoring SIGTERM MUST get SIGKILL after the grace period."""
        decoder = FFmpegDecoder(kill_grace_seconds=0.01)
        proc = MagicMock(pid=4242)
        proc.wait.side_effect = [subprocess.TimeoutExpired(cmd="ffmpeg", timeout=0.01), -9]

        with patch.object(FFmpegDecoder, "_signal") as send:
            decoder._terminate(proc)

        sent = [c.args[1] for c in send.call_args_list]
        assert sent == [signal.SIGTERM, signal.SIGKILL]

    def test_terminate_stops_after_sigterm_when_process_exits(self):
        decoder = FFmpegDecoder(kill_grace_seconds=0.01)
        proc = MagicMock(pid=4242)
        proc.wait.return_value = -15

        with patch.object(FFmpegDecoder, "_signal") as send:
            decoder._terminate(proc)

        assert [c.args[1] for c in send.call_args_list] == [signal.SIGTERM]

    def test_terminate_tolerates_already_exited_process(self):
        decoder = FFmpegDecoder()
        proc = MagicMock(pid=4242)

        with patch.object(FFmpegDecoder, "_signal", side_effect=ProcessLookupError):
            decoder._terminate(proc)
