"""
Playback state and transport controller.

One `PlaybackController` is created per application and shared by every
surface that shows or drives playback. It owns the single live media
resource, the session play history and the grace-period memory of the
last track. All mutation goes through its methods, and each mutation
is followed by exactly one `notify_all()` on the subscription bus.

State machine:
    IDLE -> LOADING -> PLAYING <-> PAUSED
    PLAYING/PAUSED -> ENDED -> PLAYING (auto-advance) | IDLE
    any -> IDLE on stop or media error
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

from mixtape_player.config.settings import settings
from mixtape_player.services.bus import SubscriptionBus
from mixtape_player.services.media import MediaEvent, MediaFactory, MediaResource
from mixtape_player.services.models import ProductKey, Track, TracklistEntry
from mixtape_player.utils.timers import CallLater, TimerSlot, loop_call_later

logger = logging.getLogger(__name__)

_FADE_STEPS = 20


class PlaybackStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"


class StopReason(str, Enum):
    STOPPED = "stopped"
    ENDED = "ended"
    ERROR = "error"


@dataclass
class PlaybackState:
    """Read-only for everything except `PlaybackController`."""

    current_track: Optional[Track] = None
    is_playing: bool = False
    current_time: float = 0.0
    duration: float = 0.0
    status: PlaybackStatus = PlaybackStatus.IDLE
    play_history: list[Track] = field(default_factory=list)
    current_track_index: int = 0
    current_album_tracks: list[Track] = field(default_factory=list)
    current_album_start_index: int = 0
    last_track: Optional[Track] = None
    stop_reason: Optional[StopReason] = None
    resource: Optional[MediaResource] = field(default=None, repr=False)


class PlaybackController:
    def __init__(
        self,
        media_factory: Optional[MediaFactory] = None,
        bus: Optional[SubscriptionBus] = None,
        *,
        grace_period: float = settings.PLAYBACK_GRACE_PERIOD_SECONDS,
        stop_fade: float = settings.PLAYBACK_STOP_FADE_SECONDS,
        call_later: CallLater = loop_call_later,
    ):
        self._media_factory = media_factory
        self._bus = bus or SubscriptionBus()
        self._grace_period = grace_period
        self._stop_fade = stop_fade
        self._forget_timer = TimerSlot("forget-last-track", call_later)
        self._fade_timer = TimerSlot("stop-fade", call_later)
        self._state = PlaybackState()

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def bus(self) -> SubscriptionBus:
        return self._bus

    # ── Transport ────────────────────────────────────────────────────────────

    def play_track(self, track: Track) -> bool:
        """Replace the live resource with a new one playing `track`.

        Does nothing when the track has no audio locator.
        """
        if not track.audio_url:
            logger.debug("Track has no audio locator", extra={"title": track.title})
            return False
        if self._media_factory is None:
            logger.warning("No media backend configured; cannot play", extra={"title": track.title})
            return False

        s = self._state
        self._fade_timer.cancel()
        self._teardown()
        self._forget_timer.cancel()

        try:
            resource = self._media_factory(track.audio_url)
        except Exception:
            logger.exception("Could not create media resource", extra={"url": track.audio_url})
            s.current_track = None
            s.is_playing = False
            s.status = PlaybackStatus.IDLE
            s.stop_reason = StopReason.ERROR
            self._bus.notify_all()
            return False

        s.resource = resource
        s.current_track = track
        s.last_track = track
        s.current_time = 0.0
        s.duration = 0.0
        s.is_playing = False
        s.status = PlaybackStatus.LOADING
        s.stop_reason = None
        self._bind(resource)

        try:
            resource.play()
        except Exception:
            logger.exception("Media resource failed to start", extra={"url": track.audio_url})
            self._halt(StopReason.ERROR, release=True)
            return False
        if s.resource is not resource:
            return False

        logger.info("Playing track", extra={"title": track.title, "url": track.audio_url})
        self._bus.notify_all()
        return True

    def play_tracklist(self, tracks: Sequence[Track], start_index: int = 0) -> bool:
        """Append `tracks` to the play history and start at `start_index`."""
        if not tracks or not 0 <= start_index < len(tracks):
            return False

        s = self._state
        album = list(tracks)
        s.current_album_tracks = album
        s.current_album_start_index = len(s.play_history)
        s.play_history.extend(album)
        s.current_track_index = s.current_album_start_index + start_index

        started = self.play_track(album[start_index])
        if not started:
            self._bus.notify_all()
        return started

    def next(self) -> bool:
        s = self._state
        if s.current_track_index >= len(s.play_history) - 1:
            return False
        return self._play_from_history(s.current_track_index + 1)

    def previous(self) -> bool:
        s = self._state
        if not s.play_history or s.current_track_index <= 0:
            return False
        return self._play_from_history(s.current_track_index - 1)

    def pause(self) -> bool:
        resource = self._state.resource
        if resource is None or resource.paused:
            return False
        self._safely(resource.pause)
        self._state.is_playing = False
        self._state.status = PlaybackStatus.PAUSED
        self._bus.notify_all()
        return True

    def resume(self) -> bool:
        s = self._state
        if s.resource is None or not s.resource.paused or s.current_track is None:
            return False
        self._safely(s.resource.play)
        s.is_playing = True
        s.status = PlaybackStatus.PLAYING
        self._bus.notify_all()
        return True

    def stop(self) -> bool:
        """Fade the volume out, then pause, rewind and forget the current track.

        State changes once the fade completes; with no fade configured it
        changes immediately.
        """
        resource = self._state.resource
        if resource is None:
            return False
        if self._fade_timer.pending:
            return True
        if self._stop_fade <= 0:
            self._halt(StopReason.STOPPED)
            return True

        start_volume = resource.volume
        interval = self._stop_fade / _FADE_STEPS
        step = 0

        def fade() -> None:
            nonlocal step
            if self._state.resource is not resource:
                return
            step += 1
            if step < _FADE_STEPS:
                resource.volume = max(0.0, start_volume * (1 - step / _FADE_STEPS))
                self._fade_timer.arm(interval, fade)
                return
            self._halt(StopReason.STOPPED)
            resource.volume = start_volume

        if not self._fade_timer.arm(interval, fade):
            self._halt(StopReason.STOPPED)
        return True

    def seek(self, seconds: float) -> bool:
        resource = self._state.resource
        if resource is None:
            return False
        seconds = max(0.0, seconds)
        self._safely(resource.seek, seconds)
        self._state.current_time = seconds
        self._bus.notify_all()
        return True

    def clear_play_history(self) -> None:
        s = self._state
        s.play_history = []
        s.current_track_index = 0
        s.current_album_tracks = []
        s.current_album_start_index = 0
        self._bus.notify_all()

    def shutdown(self) -> None:
        self._fade_timer.cancel()
        self._forget_timer.cancel()
        self._teardown()

    # ── Queries ──────────────────────────────────────────────────────────────

    def is_track_playing(self, track: Track) -> bool:
        current = self._state.current_track
        return bool(
            current is not None
            and track.audio_url
            and current.audio_url == track.audio_url
            and self._state.is_playing
        )

    def get_current_track(self) -> Optional[Track]:
        return self._state.current_track or self._state.last_track

    def is_product_loaded(self, product_key: ProductKey) -> bool:
        s = self._state
        candidates = [s.current_track, s.last_track, *s.current_album_tracks]
        return any(t is not None and t.belongs_to(product_key) for t in candidates)

    # ── Metadata patching ────────────────────────────────────────────────────

    def apply_enriched_tracklist(
        self, product_key: ProductKey, tracklist: Sequence[TracklistEntry]
    ) -> int:
        """Patch titles/artists of queued tracks in place. Returns how many changed.

        Tracks are matched by audio locator, else by product and track index.
        Audio is not interrupted.
        """
        if not tracklist:
            return 0

        s = self._state
        seen: set[int] = set()
        changed = 0
        for track in (s.current_track, s.last_track, *s.current_album_tracks, *s.play_history):
            if track is None or id(track) in seen:
                continue
            seen.add(id(track))
            entry = _match_entry(track, product_key, tracklist)
            if entry is not None and _patch_track(track, entry):
                changed += 1

        if changed:
            logger.info(
                "Patched queued track metadata",
                extra={"product": product_key, "changed": changed},
            )
            self._bus.notify_all()
        return changed

    # ── Internals ────────────────────────────────────────────────────────────

    def _bind(self, resource: MediaResource) -> None:
        def guarded(fn: Callable[[], None]) -> Callable[[], None]:
            def handler() -> None:
                if self._state.resource is resource:
                    fn()
            return handler

        resource.on(MediaEvent.READY, guarded(self._on_playing))
        resource.on(MediaEvent.PLAY, guarded(self._on_playing))
        resource.on(MediaEvent.PAUSE, guarded(self._on_paused))
        resource.on(MediaEvent.PROGRESS, guarded(self._on_progress))
        resource.on(MediaEvent.DURATION, guarded(self._on_duration))
        resource.on(MediaEvent.ENDED, guarded(self._on_ended))
        resource.on(MediaEvent.ERROR, guarded(self._on_error))

    def _on_playing(self) -> None:
        self._state.is_playing = True
        self._state.status = PlaybackStatus.PLAYING
        self._bus.notify_all()

    def _on_paused(self) -> None:
        self._state.is_playing = False
        if self._state.current_track is not None:
            self._state.status = PlaybackStatus.PAUSED
        self._bus.notify_all()

    def _on_progress(self) -> None:
        self._state.current_time = self._state.resource.current_time
        self._bus.notify_all()

    def _on_duration(self) -> None:
        self._state.duration = self._state.resource.duration
        self._bus.notify_all()

    def _on_ended(self) -> None:
        s = self._state
        s.status = PlaybackStatus.ENDED
        # a single played outside the queue has no successor in history
        in_history = (
            0 <= s.current_track_index < len(s.play_history)
            and s.play_history[s.current_track_index] is s.current_track
        )
        if in_history and (self.next() or self._advance_within_album()):
            return
        self._halt(StopReason.ENDED)

    def _on_error(self) -> None:
        logger.warning("Media resource error", extra={"url": self._state.resource.locator})
        self._halt(StopReason.ERROR, release=True)

    def _advance_within_album(self) -> bool:
        """Grow the history lazily with the next album track, if any remain."""
        s = self._state
        if not s.play_history or s.current_track_index != len(s.play_history) - 1:
            return False
        album_pos = s.current_track_index - s.current_album_start_index
        if not 0 <= album_pos < len(s.current_album_tracks) - 1:
            return False
        s.play_history.append(s.current_album_tracks[album_pos + 1])
        return self._play_from_history(s.current_track_index + 1)

    def _play_from_history(self, index: int) -> bool:
        """Move to `index` and play it; the index only sticks if playback started."""
        s = self._state
        previous = s.current_track_index
        s.current_track_index = index
        if self.play_track(s.play_history[index]):
            return True
        s.current_track_index = previous
        return False

    def _halt(self, reason: StopReason, release: bool = False) -> None:
        s = self._state
        self._fade_timer.cancel()
        resource = s.resource
        if release:
            self._teardown()
        elif resource is not None:
            resource.unbind_all()
            self._safely(resource.pause)
            self._safely(resource.seek, 0.0)
            self._bind(resource)

        if s.current_track is not None:
            s.last_track = s.current_track
        s.current_track = None
        s.is_playing = False
        s.current_time = 0.0
        s.status = PlaybackStatus.IDLE
        s.stop_reason = reason
        self._forget_timer.arm(self._grace_period, self._forget_last_track)
        logger.info("Playback halted", extra={"reason": reason.value})
        self._bus.notify_all()

    def _forget_last_track(self) -> None:
        self._state.last_track = None
        self._bus.notify_all()

    def _teardown(self) -> None:
        resource = self._state.resource
        if resource is None:
            return
        resource.unbind_all()
        self._safely(resource.pause)
        self._safely(resource.release)
        self._state.resource = None

    @staticmethod
    def _safely(fn: Callable, *args) -> None:
        try:
            fn(*args)
        except Exception:
            logger.warning("Media resource call failed", exc_info=True, extra={"call": fn.__name__})


def _match_entry(
    track: Track, product_key: ProductKey, tracklist: Sequence[TracklistEntry]
) -> Optional[TracklistEntry]:
    if track.audio_url:
        for entry in tracklist:
            if entry.url and entry.url == track.audio_url:
                return entry
    if track.belongs_to(product_key) and 0 <= track.track_index < len(tracklist):
        return tracklist[track.track_index]
    return None


def _patch_track(track: Track, entry: TracklistEntry) -> bool:
    changed = False
    if entry.title and entry.title != track.title:
        track.title = entry.title
        changed = True
    if entry.artist and entry.artist != track.artist:
        track.artist = entry.artist
        changed = True
    if entry.duration and not track.duration:
        track.duration = entry.duration
        changed = True
    return changed
