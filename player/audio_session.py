"""
Audio session manager.

Owns at most one playable handle at a time and walks it through
create -> play/pause -> seek -> stop -> unload. Screens share one manager
instead of each managing its own sound object.

States: IDLE -> LOADING -> PLAYING <-> PAUSED -> STOPPED -> UNLOADED.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol
import logging
import threading

from shared.constants import MSG_PLAYBACK_FAILED, SKIP_INTERVAL_SEC

logger = logging.getLogger(__name__)


class PlaybackState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"
    UNLOADED = "unloaded"


@dataclass
class PlaybackStatus:
    """Status update pushed by a sound handle."""
    position: Optional[float] = None
    duration: Optional[float] = None
    is_playing: bool = False
    did_just_finish: bool = False


StatusCallback = Callable[[PlaybackStatus], None]


class SoundHandle(Protocol):
    def play(self) -> None: ...

    def pause(self) -> None: ...

    def seek(self, seconds: float) -> None: ...

    def position(self) -> float: ...

    def duration(self) -> float: ...

    def unload(self) -> None: ...


class AudioBackend(Protocol):
    def create(self, url: str, on_status: StatusCallback) -> SoundHandle: ...


class AudioSessionManager:
    """
    Single-handle playback controller.

    Args:
        backend: Creates sound handles for URLs
        on_play: Called with the item id once playback of a new item starts
    """

    def __init__(self, backend: AudioBackend, on_play: Optional[Callable[[str], None]] = None):
        self.backend = backend
        self.on_play = on_play

        self.state = PlaybackState.IDLE
        self.current_id: Optional[str] = None
        self.position = 0.0
        self.duration = 0.0
        self.error: Optional[str] = None

        self._handle: Optional[SoundHandle] = None
        # Bumped on every play/release so late results of a superseded play can be detected
        self._generation = 0
        self._lock = threading.RLock()
        self._on_change_callbacks: List[Callable[[PlaybackState], None]] = []

    def __enter__(self) -> 'AudioSessionManager':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    @property
    def has_handle(self) -> bool:
        return self._handle is not None

    def is_playing(self, item_id: Optional[str] = None) -> bool:
        if self.state != PlaybackState.PLAYING:
            return False
        return item_id is None or item_id == self.current_id

    def add_change_callback(self, callback: Callable[[PlaybackState], None]) -> None:
        if callback not in self._on_change_callbacks:
            self._on_change_callbacks.append(callback)

    def clear_error(self) -> None:
        self.error = None

    # Transport

    def play(self, item_id: str, url: str) -> bool:
        """
        Play an item, or toggle it when it is already the current one.

        Pressing play on the current item pauses it while playing and resumes
        the same handle while paused or stopped. Any other item unloads the
        previous handle first.

        Returns:
            False when the sound could not be started; `error` then holds
            the user-facing message
        """
        with self._lock:
            if item_id == self.current_id and self._handle is not None:
                if self.state == PlaybackState.PLAYING:
                    self.pause()
                    return True
                if self.state in (PlaybackState.PAUSED, PlaybackState.STOPPED):
                    self.resume()
                    return True

            previous, self._handle = self._handle, None
            self._generation += 1
            generation = self._generation
            self.current_id = item_id
            self.position = 0.0
            self.duration = 0.0
            self.error = None
            self.state = PlaybackState.LOADING
        self._notify_change()

        if previous is not None:
            self._unload(previous)

        handle = None
        try:
            handle = self.backend.create(url, lambda status: self._on_handle_status(generation, status))
            handle.play()
        except Exception as e:
            logger.error("Failed to play %s: %s", item_id, e)
            if handle is not None:
                self._unload(handle)
            with self._lock:
                if generation == self._generation:
                    self.state = PlaybackState.IDLE
                    self.current_id = None
                    self.error = MSG_PLAYBACK_FAILED
            self._notify_change()
            return False

        with self._lock:
            superseded = generation != self._generation
            if not superseded:
                self._handle = handle
                self.state = PlaybackState.PLAYING
                self.duration = self._read(handle.duration, 0.0)

        if superseded:
            # Another play or a release won while this one was loading
            logger.debug("Play of %s superseded, unloading its handle", item_id)
            self._unload(handle)
            return False

        self._notify_change()
        if self.on_play:
            try:
                self.on_play(item_id)
            except Exception:
                logger.exception("Error in on_play hook")
        return True

    def pause(self) -> None:
        with self._lock:
            handle = self._handle
            if handle is None or self.state != PlaybackState.PLAYING:
                return
            if self._control(handle.pause):
                self.state = PlaybackState.PAUSED
                self.position = self._read(handle.position, self.position)
        self._notify_change()

    def resume(self) -> None:
        """Resume the existing handle; nothing is re-created or re-buffered."""
        with self._lock:
            handle = self._handle
            if handle is None or self.state not in (PlaybackState.PAUSED, PlaybackState.STOPPED):
                return
            if self._control(handle.play):
                self.state = PlaybackState.PLAYING
        self._notify_change()

    def toggle(self) -> PlaybackState:
        if self.state == PlaybackState.PLAYING:
            self.pause()
        else:
            self.resume()
        return self.state

    def stop(self) -> None:
        """Pause and rewind to the start, keeping the handle loaded."""
        with self._lock:
            handle = self._handle
            if handle is None:
                return
            if self._control(handle.pause) and self._control(lambda: handle.seek(0)):
                self.position = 0.0
                self.state = PlaybackState.STOPPED
        self._notify_change()

    def seek(self, seconds: float) -> float:
        """Seek to an absolute position, clamped to [0, duration]. Returns the target."""
        with self._lock:
            handle = self._handle
            if handle is None:
                return self.position
            duration = self._read(handle.duration, self.duration) or self.duration
            target = max(0.0, float(seconds))
            if duration > 0:
                target = min(target, duration)
            if self._control(lambda: handle.seek(target)):
                self.position = target
            else:
                target = self.position
        self._notify_change()
        return target

    def skip_forward(self, interval: float = SKIP_INTERVAL_SEC) -> float:
        return self.seek(self._current_position() + interval)

    def skip_backward(self, interval: float = SKIP_INTERVAL_SEC) -> float:
        return self.seek(self._current_position() - interval)

    def release(self) -> None:
        """Unload the handle. Safe to call any number of times."""
        with self._lock:
            handle, self._handle = self._handle, None
            self._generation += 1
            if handle is None and self.state == PlaybackState.UNLOADED:
                return
            self.state = PlaybackState.UNLOADED
            self.current_id = None
            self.position = 0.0
        if handle is not None:
            self._unload(handle)
        self._notify_change()

    # Status

    def handle_status(self, status: PlaybackStatus) -> None:
        """
        Apply a status update from the current handle.

        Natural completion rewinds to zero, moves to STOPPED and clears the
        current id so controls go back to a play affordance.
        """
        with self._lock:
            handle = self._handle
            if handle is None:
                return
            if status.duration:
                self.duration = status.duration
            if status.position is not None:
                self.position = status.position
            if not status.did_just_finish:
                return
            self._control(handle.pause)
            self._control(lambda: handle.seek(0))
            self.position = 0.0
            self.state = PlaybackState.STOPPED
            self.current_id = None
        logger.debug("Playback finished")
        self._notify_change()

    def _on_handle_status(self, generation: int, status: PlaybackStatus) -> None:
        if generation != self._generation:
            return
        self.handle_status(status)

    # Helpers

    def _current_position(self) -> float:
        handle = self._handle
        if handle is None:
            return self.position
        return self._read(handle.position, self.position)

    def _control(self, fn: Callable[[], None]) -> bool:
        try:
            fn()
            return True
        except Exception as e:
            logger.warning("Playback control failed: %s", e)
            self.error = MSG_PLAYBACK_FAILED
            return False

    @staticmethod
    def _read(fn: Callable[[], float], default: float) -> float:
        try:
            value = fn()
        except Exception:
            return default
        return float(value) if value is not None else default

    @staticmethod
    def _unload(handle: SoundHandle) -> None:
        try:
            handle.unload()
        except Exception as e:
            logger.warning("Error unloading sound: %s", e)

    def _notify_change(self) -> None:
        for callback in list(self._on_change_callbacks):
            try:
                callback(self.state)
            except Exception:
                logger.exception("Error in playback state callback")
