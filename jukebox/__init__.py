"""
Jukebox: playlist playback through ffmpeg into a live audio device.

    from jukebox import Player, TrackQueue

    queue = TrackQueue(["/music/a.mp3", "/music/b.flac"])
    player = Player.from_config(queue)
    player.on("end", lambda event: print("finished", event["track"]))
    player.play()
"""

from jukebox.config import PlayerConfig, configure_logging
from jukebox.playback_core.player import Player
from jukebox.playback_core.track_queue import TrackQueue

__version__ = "0.1.0"

__all__ = ["Player", "PlayerConfig", "TrackQueue", "configure_logging"]
