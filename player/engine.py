"""
Sound handles backed by python-mpv.
Each handle wraps its own audio-only mpv instance and reports position,
duration and end-of-file back to the audio session manager.
"""

import logging
import time
from typing import Optional

import mpv

from shared.exceptions import AudioPlaybackError
from player.audio_session import PlaybackStatus, StatusCallback

logger = logging.getLogger(__name__)

# Minimum seconds between two time-pos status updates
TIME_UPDATE_INTERVAL = 0.25


class MpvSoundHandle:
    """One loaded sound. Created paused; `play()` loads the URL on first use."""

    def __init__(self, url: str, on_status: Optional[StatusCallback] = None):
        # vo='null' because we are audio-only; keep_open so a finished file can be rewound
        self.player = mpv.MPV(
            vo='null',
            ytdl=False,
            keep_open='yes',
            input_default_bindings=False,
        )
        self.url = url
        self._on_status = on_status
        self._loaded = False
        self._unloaded = False
        self._last_time_update = 0.0

        self.player.observe_property('time-pos', self._handle_time_update)
        self.player.observe_property('duration', self._handle_duration)
        self.player.observe_property('eof-reached', self._handle_eof)
        self.player.volume = 100

    def play(self):
        if self._unloaded:
            raise AudioPlaybackError(details={"reason": "unloaded"})
        if not self._loaded:
            self.player.play(self.url)
            self._loaded = True
        self.player.pause = False

    def pause(self):
        if not self._unloaded:
            self.player.pause = True

    def seek(self, seconds: float):
        """Seek to absolute position in seconds."""
        if not self._loaded or self._unloaded:
            return
        try:
            self.player.seek(seconds, reference='absolute')
        except Exception as e:
            logger.warning("Error seeking: %s", e)

    def position(self) -> float:
        if self._unloaded:
            return 0.0
        return self.player.time_pos or 0.0

    def duration(self) -> float:
        if self._unloaded:
            return 0.0
        return self.player.duration or 0.0

    def unload(self):
        if self._unloaded:
            return
        self._unloaded = True
        self._on_status = None
        self.player.terminate()

    # Event handlers (called from the mpv event thread)

    def _handle_time_update(self, name, value):
        if value is None:
            return
        now = time.time()
        if now - self._last_time_update < TIME_UPDATE_INTERVAL:
            return
        self._last_time_update = now
        self._emit(PlaybackStatus(position=value, is_playing=not self.player.pause))

    def _handle_duration(self, name, value):
        if value:
            self._emit(PlaybackStatus(duration=value, is_playing=not self.player.pause))

    def _handle_eof(self, name, value):
        if value:
            logger.debug("mpv eof-reached for %s", self.url)
            self._emit(PlaybackStatus(is_playing=False, did_just_finish=True))

    def _emit(self, status: PlaybackStatus):
        callback = self._on_status
        if callback is None:
            return
        try:
            callback(status)
        except Exception:
            logger.exception("Error in playback status callback")


class MpvBackend:
    """Creates mpv-backed sound handles for the audio session manager."""

    def create(self, url: str, on_status: StatusCallback) -> MpvSoundHandle:
        try:
            return MpvSoundHandle(url, on_status)
        except (OSError, RuntimeError) as e:
            raise AudioPlaybackError(details={"reason": str(e)}) from e
