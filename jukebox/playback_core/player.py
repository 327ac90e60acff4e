"""
Player for Jukebox.

Event-driven playback controller. Pulls tracks from a TrackQueue, probes
each one, opens an output sink sized to it, pipes an ffmpeg decoder into
the sink, and reports lifecycle events:

- start      {track}            sink opened, decoding begun
- progress   {track, elapsed}   periodic tick while playing
- stop       {track}            caller-initiated stop accepted
- end        {track}            track finished naturally
- queue-end                     queue drained, nothing left to auto-play
- error      Exception          unsuppressed probe/decode/sink failure

The decoder and the sink fail independently and asynchronously, and the
errors they raise when we kill them look exactly like real failures. Each
session therefore carries a StopCause, latched to USER_STOP before any
resource is killed; every resource callback is bound to the session that
created it and consults that session's cause before surfacing anything.
"""

import logging
import os
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Tuple

from pyee import EventEmitter

from jukebox.config import PlayerConfig
from jukebox.decoding.ffmpeg_decoder import FFmpegDecoder
from jukebox.decoding.ffmpeg_resolver import FFmpegPaths, FFmpegResolver
from jukebox.decoding.metadata_probe import FFprobeMetadataProbe
from jukebox.errors import DecodeError, ResolutionError, SinkError, TrackNotFoundError
from jukebox.outputs.factory import sink_factory_for
from jukebox.playback_core.audio_format import AudioFormat
from jukebox.playback_core.scheduler import Scheduler, ThreadingScheduler
from jukebox.playback_core.session import PlaybackSession, PlayerState, StopCause
from jukebox.playback_core.track_queue import TrackQueue

logger = logging.getLogger(__name__)

EVENT_START = "start"
EVENT_PROGRESS = "progress"
EVENT_STOP = "stop"
EVENT_END = "end"
EVENT_QUEUE_END = "queue-end"
EVENT_ERROR = "error"

_ACTIVE_STATES = (PlayerState.LOADING, PlayerState.PLAYING)


class Player(EventEmitter):
    """
    Playback state machine: IDLE -> LOADING -> PLAYING -> STOPPING -> IDLE.

    DESTROYED is terminal and only reached through destroy().

    Threading: decoder, sink and timer callbacks arrive on their own
    threads. Every state transition happens under one re-entrant lock;
    public events are queued while the lock is held and dispatched after
    it is released, so listeners may call back into the player.
    """

    def __init__(
        self,
        track_queue: TrackQueue,
        resolver: Optional[FFmpegResolver] = None,
        probe: Optional[Any] = None,
        sink_factory: Optional[Callable] = None,
        decoder_factory: Optional[Callable] = None,
        scheduler: Optional[Scheduler] = None,
        path_exists: Callable[[str], bool] = os.path.exists,
        progress_interval: float = 1.0,
        skip_delay: float = 0.1,
        advance_delay: float = 0.5,
        kill_grace: float = 2.0,
        load_runner: Optional[Callable[[Callable[[], None]], None]] = None,
    ):
        """
        Initialize the player.

        Args:
            track_queue: Playlist the player pulls from
            resolver: FFmpeg binary resolver (default: FFmpegResolver())
            probe: Object with probe(path) -> AudioFormat
                   (default: FFprobeMetadataProbe over the resolver)
            sink_factory: Callable(AudioFormat) -> BaseSink
                          (default: live sounddevice sink)
            decoder_factory: Callable(FFmpegPaths, on_error, on_natural_end)
                             -> decoder with start()/kill() (default: FFmpegDecoder)
            scheduler: Timer source for delays and the progress tick
            path_exists: File existence check
            progress_interval: Seconds between progress events
            skip_delay: Seconds between skip()'s stop and the next play
            advance_delay: Seconds between a natural end and auto-advance
            kill_grace: Seconds ffmpeg gets after SIGTERM before SIGKILL
            load_runner: Runs the probe-and-open step of play() (default:
                         a daemon thread per track, so play() never blocks)
        """
        super().__init__()
        self._track_queue = track_queue
        self._resolver = resolver or FFmpegResolver()
        self._probe = probe or FFprobeMetadataProbe(self._resolver.resolve)
        self._sink_factory = sink_factory or sink_factory_for("sounddevice")
        self._decoder_factory = decoder_factory or self._default_decoder_factory
        self._scheduler = scheduler or ThreadingScheduler()
        self._path_exists = path_exists
        self._progress_interval = progress_interval
        self._skip_delay = skip_delay
        self._advance_delay = advance_delay
        self._kill_grace = kill_grace
        self._load_runner = load_runner or self._start_load_thread

        self._state_lock = threading.RLock()
        self._lock_depth = 0
        self._outbox: List[Tuple[str, Tuple[Any, ...]]] = []
        self._state = PlayerState.IDLE
        self._session: Optional[PlaybackSession] = None
        self._progress_call = None
        self._resume_track: Optional[str] = None

    @classmethod
    def from_config(cls, track_queue: TrackQueue, config: Optional[PlayerConfig] = None, **kwargs) -> "Player":
        """
        Build a player wired from a PlayerConfig.

        Args:
            track_queue: Playlist the player pulls from
            config: PlayerConfig (default: PlayerConfig.load_config())
            **kwargs: Overrides for any Player constructor argument
        """
        config = config or PlayerConfig.load_config()
        resolver = FFmpegResolver(config.resolver_options())
        wiring = dict(
            resolver=resolver,
            probe=FFprobeMetadataProbe(resolver.resolve, timeout=config.probe_timeout),
            sink_factory=sink_factory_for(config.output_sink_mode, config.output_device),
            progress_interval=config.progress_interval,
            skip_delay=config.skip_delay,
            advance_delay=config.advance_delay,
            kill_grace=config.kill_grace,
        )
        wiring.update(kwargs)
        return cls(track_queue, **wiring)

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlayerState:
        return self._state

    @property
    def queue(self) -> TrackQueue:
        return self._track_queue

    @property
    def current_track(self) -> Optional[str]:
        session = self._session
        return session.track if session is not None else None

    @property
    def is_playing(self) -> bool:
        """True while a track is loading or playing."""
        return self._state in _ACTIVE_STATES

    @property
    def is_paused(self) -> bool:
        # Pause is implemented as stop, so nothing is ever paused
        return False

    def has_track(self) -> bool:
        return self._session is not None

    def get_current_progress(self) -> float:
        """Seconds elapsed since the current track's sink opened (0.0 if not playing)."""
        with self._state_lock:
            if self._state is not PlayerState.PLAYING or self._session is None:
                return 0.0
            return self._session.elapsed()

    def get_ffmpeg_info(self) -> Dict[str, Any]:
        """Availability report for native and bundled FFmpeg."""
        return self._resolver.get_availability()

    def reconfigure_ffmpeg(self, **options) -> FFmpegPaths:
        """
        Apply new resolver options and resolve again.

        Args:
            **options: ResolverOptions fields (ffmpeg_path, prefer_native, ...)

        Returns:
            The newly resolved FFmpegPaths

        Raises:
            ResolutionError: If no usable FFmpeg exists under the new options
        """
        self._resolver.update_options(**options)
        return self._resolver.resolve()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def play(self, track: Optional[str] = None) -> None:
        """
        Start playing track, or the next queued track if none is given.

        A no-op while a track is already loading or playing. Missing files
        are reported as errors and skipped in favour of the next queued
        track; an exhausted queue emits queue-end.

        Returns once the track is LOADING; probing and opening the sink
        happen on the load runner and report back through events.
        """
        with self._transition():
            if self._state is PlayerState.DESTROYED:
                logger.warning("[PLAYER] play() called on a destroyed player")
                return
            if self._state in _ACTIVE_STATES:
                logger.info("[PLAYER] A track is already playing. Stop it first.")
                return

            try:
                paths = self._resolver.resolve()
            except ResolutionError as e:
                logger.error(f"[PLAYER] Failed to configure FFmpeg: {e}")
                self._queue_event(EVENT_ERROR, e)
                return

            # A new claim supersedes whatever pause() remembered
            self._resume_track = None
            session = self._claim_next_track(track)
            if session is None:
                return
            self._session = session
            self._state = PlayerState.LOADING

        self._load_runner(lambda: self._load(session, paths))

    def _load(self, session: PlaybackSession, paths: FFmpegPaths) -> None:
        """Probe the track and open its sink and decoder. Runs off the caller's thread."""
        # Probe without holding the lock; stop() may retire the session meanwhile
        logger.info(f"[PLAYER] Probing audio format for: {session.track}")
        try:
            audio_format = self._probe.probe(session.track)
        except Exception as e:
            with self._transition():
                self._fail_session(session, e)
            return

        with self._transition():
            if session is not self._session:
                logger.info(f"[PLAYER] Playback of {session.track} was stopped while loading")
                return
            try:
                self._open_resources(session, paths, audio_format)
            except Exception as e:
                self._fail_session(session, e)

    def stop(self) -> None:
        """Stop the current track. No-op (and no event) when nothing is playing."""
        with self._transition():
            session = self._session
            if session is None or self._state not in _ACTIVE_STATES:
                return
            # Latch before anything is killed: kill() echoes arrive on other threads
            session.mark_user_stop()
            logger.info(f"[PLAYER] Stopping playback: {session.track}")
            self._queue_event(EVENT_STOP, {"track": session.track})
            self._cleanup()

    def skip(self) -> None:
        """Stop the current track and play the next one after skip_delay."""
        with self._transition():
            if self._state is PlayerState.DESTROYED:
                logger.warning("[PLAYER] skip() called on a destroyed player")
                return
            logger.info("[PLAYER] Skipping track...")
            self.stop()
            # Give the old decoder and device time to let go before reacquiring
            self._scheduler.call_later(self._skip_delay, self.play)

    def pause(self) -> None:
        """Stop playback; resume() restarts the same track from the beginning."""
        logger.warning("[PLAYER] Pause is not supported with ffmpeg streaming. Stopping instead.")
        with self._transition():
            if self._session is not None and self._state in _ACTIVE_STATES:
                self._resume_track = self._session.track
            self.stop()

    def resume(self) -> None:
        """Replay the paused track if there is one, else play the next queued track."""
        with self._transition():
            if self._state is PlayerState.DESTROYED:
                logger.warning("[PLAYER] resume() called on a destroyed player")
                return
            if self._state in _ACTIVE_STATES:
                logger.debug("[PLAYER] resume() ignored: already playing")
                return
            track, self._resume_track = self._resume_track, None
        self.play(track)

    def destroy(self) -> None:
        """Tear everything down and detach all listeners. The player is unusable afterwards."""
        with self._transition():
            if self._state is PlayerState.DESTROYED:
                return
            logger.info("[PLAYER] Destroying player...")
            if self._session is not None:
                self._session.mark_user_stop()
            self._cleanup()
            self._scheduler.cancel_all()
            self._outbox.clear()
            self._resume_track = None
            self._state = PlayerState.DESTROYED
        self.remove_all_listeners()

    # ------------------------------------------------------------------
    # Session setup and teardown (lock held)
    # ------------------------------------------------------------------

    def _claim_next_track(self, track: Optional[str]) -> Optional[PlaybackSession]:
        """Pick the first existing track, reporting missing ones on the way."""
        candidate = track or self._track_queue.get_next()
        while candidate:
            if self._path_exists(candidate):
                return PlaybackSession(track=candidate)
            logger.error(f"[PLAYER] Error: File not found at {candidate}")
            self._queue_event(EVENT_ERROR, TrackNotFoundError(candidate))
            candidate = self._track_queue.get_next()
        logger.info("[PLAYER] Queue is empty")
        self._queue_event(EVENT_QUEUE_END)
        return None

    def _open_resources(self, session: PlaybackSession, paths: FFmpegPaths, audio_format: AudioFormat) -> None:
        session.audio_format = audio_format

        sink = self._sink_factory(audio_format)
        session.sink = sink
        sink.bind(
            on_open=lambda: self._on_sink_open(session),
            on_close=lambda: self._on_sink_close(session),
            on_error=lambda error: self._on_sink_error(session, error),
        )

        decoder = self._decoder_factory(
            paths,
            lambda error: self._on_decoder_error(session, error),
            lambda: self._on_decoder_natural_end(session),
        )
        session.decoder = decoder

        logger.info(f"[PLAYER] Starting playback: {session.track} ({audio_format})")
        decoder.start(session.track, audio_format, sink)

    @staticmethod
    def _start_load_thread(load: Callable[[], None]) -> None:
        threading.Thread(
            target=load,
            name="jukebox-loader",
            daemon=True,
        ).start()

    def _default_decoder_factory(self, paths: FFmpegPaths, on_error, on_natural_end) -> FFmpegDecoder:
        return FFmpegDecoder(
            ffmpeg_path=paths.ffmpeg,
            on_error=on_error,
            on_natural_end=on_natural_end,
            kill_grace_seconds=self._kill_grace,
        )

    def _fail_session(self, session: PlaybackSession, error: Exception) -> None:
        if session is not self._session:
            logger.debug(f"[PLAYER] Suppressed error from retired session {session.track}: {error}")
            return
        logger.error(f"[PLAYER] Error playing {session.track}: {error}")
        session.mark_failed()
        self._queue_event(EVENT_ERROR, error)
        self._cleanup()

    def _cleanup(self) -> None:
        """Release the current session's resources. Idempotent."""
        self._stop_progress_ticker()
        session = self._session
        if session is None:
            if self._state is not PlayerState.DESTROYED:
                self._state = PlayerState.IDLE
            return

        logger.debug(f"[PLAYER] Cleaning up resources for {session.track}...")
        self._state = PlayerState.STOPPING
        # Retire first so callbacks fired synchronously by kill()/end() see it
        self._session = None
        decoder, sink = session.decoder, session.sink
        session.decoder = None
        session.sink = None

        if decoder is not None:
            try:
                decoder.kill()
            except Exception as e:
                logger.warning(f"[PLAYER] Error killing decoder: {e}")
        if sink is not None:
            try:
                sink.end(drain=False)
            except Exception as e:
                logger.warning(f"[PLAYER] Error ending sink: {e}")

        self._state = PlayerState.IDLE

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def _start_progress_ticker(self, session: PlaybackSession) -> None:
        self._stop_progress_ticker()
        self._progress_call = self._scheduler.call_later(self._progress_interval, lambda: self._tick(session))

    def _stop_progress_ticker(self) -> None:
        if self._progress_call is not None:
            self._progress_call.cancel()
            self._progress_call = None

    def _tick(self, session: PlaybackSession) -> None:
        with self._transition():
            if session is not self._session or self._state is not PlayerState.PLAYING:
                return
            self._queue_event(EVENT_PROGRESS, {"track": session.track, "elapsed": session.elapsed()})
            self._progress_call = self._scheduler.call_later(self._progress_interval, lambda: self._tick(session))

    # ------------------------------------------------------------------
    # Resource callbacks (sink / decoder threads)
    # ------------------------------------------------------------------

    def _on_sink_open(self, session: PlaybackSession) -> None:
        with self._transition():
            if session is not self._session:
                logger.debug(f"[PLAYER] Ignoring sink open from retired session {session.track}")
                return
            logger.info(f"[PLAYER] Output opened for: {session.track}")
            session.mark_started()
            self._state = PlayerState.PLAYING
            self._queue_event(EVENT_START, {"track": session.track})
            self._start_progress_ticker(session)

    def _on_sink_close(self, session: PlaybackSession) -> None:
        with self._transition():
            if session.intentional_stop:
                logger.debug(f"[PLAYER] Sink closed after intentional stop: {session.track}")
                return
            if session is not self._session:
                logger.debug(f"[PLAYER] Sink closed for retired session {session.track} (cause={session.cause.name})")
                return
            if session.cause is not StopCause.NATURAL_END:
                logger.warning(f"[PLAYER] Output closed before decoding finished: {session.track}")

            finished_track = session.track
            logger.info(f"[PLAYER] Track finished: {finished_track}")
            self._cleanup()
            self._queue_event(EVENT_END, {"track": finished_track})

            if self._track_queue.peek() is not None:
                self._scheduler.call_later(self._advance_delay, self.play)
            else:
                logger.info("[PLAYER] Playback queue is empty")
                self._queue_event(EVENT_QUEUE_END)

    def _on_sink_error(self, session: PlaybackSession, error: SinkError) -> None:
        with self._transition():
            if session.intentional_stop:
                if error.is_write_after_end:
                    logger.debug(f"[PLAYER] Suppressed sink write-after-end after intentional stop: {session.track}")
                    return
                # A genuine device failure, even though the track was already stopped
                logger.error(f"[PLAYER] Sink error after stop of {session.track}: {error}")
                self._queue_event(EVENT_ERROR, error)
                return
            if session is not self._session:
                logger.debug(f"[PLAYER] Suppressed sink error from retired session {session.track}: {error}")
                return
            logger.error(f"[PLAYER] Sink error: {error}")
            self._fail_session(session, error)

    def _on_decoder_error(self, session: PlaybackSession, error: DecodeError) -> None:
        with self._transition():
            if session.intentional_stop:
                # Expected echo of kill(); the cause stays latched for later echoes
                logger.debug(f"[PLAYER] Suppressed decoder error after intentional stop: {session.track}: {error}")
                return
            if session is not self._session:
                logger.debug(f"[PLAYER] Suppressed decoder error from retired session {session.track}: {error}")
                return
            logger.error(f"[PLAYER] FFmpeg error: {error}")
            self._fail_session(session, error)

    def _on_decoder_natural_end(self, session: PlaybackSession) -> None:
        with self._transition():
            session.mark_decoded()
            logger.debug(f"[PLAYER] Decoder finished {session.track} (cause={session.cause.name})")

    # ------------------------------------------------------------------
    # Event plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _transition(self):
        """
        Hold the state lock; dispatch queued events once the outermost
        holder in this thread lets go.
        """
        with self._state_lock:
            self._lock_depth += 1
            try:
                yield
            finally:
                self._lock_depth -= 1
                outermost = self._lock_depth == 0
        if outermost:
            self._flush_events()

    def _queue_event(self, event: str, *args) -> None:
        self._outbox.append((event, args))

    def _flush_events(self) -> None:
        while True:
            with self._state_lock:
                if not self._outbox or self._state is PlayerState.DESTROYED:
                    self._outbox.clear()
                    return
                pending, self._outbox = self._outbox, []
            for event, args in pending:
                self._dispatch(event, *args)

    def _dispatch(self, event: str, *args) -> None:
        if event == EVENT_ERROR and not self.listeners(EVENT_ERROR):
            # pyee raises unhandled error events; nothing may escape a callback thread
            logger.error(f"[PLAYER] Unhandled error event: {args[0] if args else None}")
            return
        try:
            self.emit(event, *args)
        except Exception as e:
            logger.error(f"[PLAYER] Error in '{event}' listener: {e}", exc_info=True)
