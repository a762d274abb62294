import pytest

from mixtape_player.services.bus import SubscriptionBus
from mixtape_player.services.media import MediaResource
from mixtape_player.services.models import ProductKey, Track
from mixtape_player.services.playback import PlaybackController


class _Handle:
    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeClock:
    """Manual clock doubling as a `call_later` scheduler."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.timers: list[_Handle] = []

    def __call__(self) -> float:
        return self.now

    def call_later(self, delay, callback):
        handle = _Handle(self.now + delay, callback)
        self.timers.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = [h for h in self.timers if not h.cancelled and h.due <= self.now]
        self.timers = [h for h in self.timers if h not in due]
        for handle in sorted(due, key=lambda h: h.due):
            handle.callback()

    @property
    def pending(self) -> int:
        return sum(1 for h in self.timers if not h.cancelled)


class FakeMedia(MediaResource):
    def __init__(self, locator: str):
        super().__init__(locator)
        self._paused = True
        self._time = 0.0
        self._duration = 0.0
        self.released = False
        self.calls: list[str] = []

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def current_time(self) -> float:
        return self._time

    @property
    def duration(self) -> float:
        return self._duration

    def play(self) -> None:
        self.calls.append("play")
        self._paused = False

    def pause(self) -> None:
        self.calls.append("pause")
        self._paused = True

    def seek(self, seconds: float) -> None:
        self.calls.append(f"seek:{seconds}")
        self._time = seconds

    def release(self) -> None:
        self.calls.append("release")
        self.released = True

    def tick(self, seconds: float, duration: float = 180.0) -> None:
        self._time = seconds
        self._duration = duration


class MediaFactory:
    def __init__(self):
        self.created: list[FakeMedia] = []

    def __call__(self, locator: str) -> FakeMedia:
        media = FakeMedia(locator)
        self.created.append(media)
        return media

    @property
    def live(self) -> list[FakeMedia]:
        return [m for m in self.created if not m.released]


def make_tracks(count: int, product: str = "p1", content: str = "doc-1", prefix: str = "") -> list[Track]:
    key = ProductKey(product, content)
    return [
        Track(
            title=f"Track {i + 1}",
            audio_url=f"https://cdn.example/{product}/{prefix}{i}.mp3",
            product_id=key.commerce_id,
            commerce_id=key.commerce_id,
            content_id=key.content_id,
            track_index=i,
        )
        for i in range(count)
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def media():
    return MediaFactory()


@pytest.fixture
def bus():
    return SubscriptionBus()


@pytest.fixture
def player(media, bus, clock):
    return PlaybackController(media, bus, grace_period=5.0, stop_fade=0.0, call_later=clock.call_later)
