"""
Track Queue for Jukebox.

FIFO playlist of track references. Knows nothing about playback; the
player only ever removes entries from it through get_next().
"""

import logging
import threading
from collections import deque
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


class TrackQueue:
    """
    FIFO queue of track references (file paths).

    Insertion order is playback order. Identical paths are not
    deduplicated. The queue is guarded by a lock because the player pulls
    from it on timer threads while callers may be adding tracks.
    """

    def __init__(self, tracks: Optional[Iterable[str]] = None):
        """
        Initialize the track queue.

        Args:
            tracks: Optional initial tracks, in playback order
        """
        self._queue: deque[str] = deque()
        self._lock = threading.Lock()
        if tracks:
            self.add_multiple(tracks)

    def add(self, track: str) -> None:
        """
        Append a track reference to the tail of the queue.

        Args:
            track: Path of the audio file to queue
        """
        with self._lock:
            self._queue.append(track)
        logger.debug(f"[QUEUE] Added: {track}")

    def add_multiple(self, tracks: Iterable[str]) -> None:
        """
        Append several track references, keeping their order.

        Args:
            tracks: Paths to queue
        """
        for track in tracks:
            self.add(track)

    def get_next(self) -> Optional[str]:
        """
        Remove and return the head of the queue.

        Returns:
            Track reference from the front of the queue, or None if empty
        """
        with self._lock:
            if not self._queue:
                return None
            track = self._queue.popleft()
        logger.debug(f"[QUEUE] Next: {track}")
        return track

    def peek(self) -> Optional[str]:
        """
        Return the head of the queue without removing it.

        Returns:
            Track reference from the front of the queue, or None if empty
        """
        with self._lock:
            return self._queue[0] if self._queue else None

    def list(self) -> List[str]:
        """
        Snapshot of the queue in playback order.

        Returns:
            A new list; mutating it does not affect the queue
        """
        with self._lock:
            return list(self._queue)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._queue.clear()
        logger.debug("[QUEUE] Cleared")

    def size(self) -> int:
        with self._lock:
            return len(self._queue)

    def empty(self) -> bool:
        return self.size() == 0

    def __len__(self) -> int:
        return self.size()
