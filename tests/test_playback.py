from mixtape_player.services.media import MediaEvent
from mixtape_player.services.models import ProductKey, Track, TracklistEntry
from mixtape_player.services.playback import PlaybackStatus, StopReason

from tests.conftest import make_tracks


def _snapshot(player):
    s = player.state
    return (
        s.current_track,
        s.is_playing,
        s.current_time,
        s.status,
        list(s.play_history),
        s.current_track_index,
        list(s.current_album_tracks),
        s.current_album_start_index,
        s.last_track,
        s.resource,
    )


class TestPlayTrack:
    def test_creates_resource_and_loads(self, player, media):
        track = make_tracks(1)[0]
        assert player.play_track(track) is True
        s = player.state
        assert s.current_track is track
        assert s.last_track is track
        assert s.status == PlaybackStatus.LOADING
        assert media.created[0].locator == track.audio_url
        assert media.created[0].calls == ["play"]

    def test_ready_transitions_to_playing(self, player, media):
        player.play_track(make_tracks(1)[0])
        media.created[0].emit(MediaEvent.READY)
        assert player.state.status == PlaybackStatus.PLAYING
        assert player.state.is_playing is True

    def test_missing_locator_is_a_noop(self, player, media):
        before = _snapshot(player)
        assert player.play_track(Track(title="Silent")) is False
        assert _snapshot(player) == before
        assert media.created == []

    def test_previous_resource_is_torn_down(self, player, media):
        a, b = make_tracks(2)
        player.play_track(a)
        player.play_track(b)
        first, second = media.created
        assert first.released is True
        assert "pause" in first.calls
        assert media.live == [second]

    def test_stale_resource_events_are_ignored(self, player, media):
        a, b = make_tracks(2)
        player.play_track(a)
        stale = media.created[0]
        player.play_track(b)
        stale.emit(MediaEvent.ENDED)
        assert player.state.current_track is b

    def test_progress_and_duration(self, player, media):
        player.play_track(make_tracks(1)[0])
        res = media.created[0]
        res.tick(12.5, duration=200.0)
        res.emit(MediaEvent.DURATION)
        res.emit(MediaEvent.PROGRESS)
        assert player.state.duration == 200.0
        assert player.state.current_time == 12.5

    def test_factory_failure_goes_idle(self, bus, clock):
        from mixtape_player.services.playback import PlaybackController

        def broken(locator):
            raise OSError("no audio device")

        player = PlaybackController(broken, bus, call_later=clock.call_later)
        assert player.play_track(make_tracks(1)[0]) is False
        assert player.state.current_track is None
        assert player.state.stop_reason == StopReason.ERROR


class TestPlayTracklist:
    def test_scenario_start_in_middle(self, player):
        t1, t2, t3 = make_tracks(3)
        player.play_tracklist([t1, t2, t3], 1)
        s = player.state
        assert s.play_history == [t1, t2, t3]
        assert s.current_track_index == 1
        assert s.current_track is t2

    def test_history_is_appended_across_albums(self, player):
        first = make_tracks(3, product="p1")
        second = make_tracks(2, product="p2")
        player.play_tracklist(first, 2)
        player.play_tracklist(second, 0)
        s = player.state
        assert s.play_history[:3] == first
        assert all(a is b for a, b in zip(s.play_history[:3], first))
        assert s.play_history[3:] == second
        assert s.current_album_start_index == 3
        assert s.current_track_index == 3
        assert s.current_album_tracks == second

    def test_invalid_start_index_changes_nothing(self, player):
        before = _snapshot(player)
        assert player.play_tracklist(make_tracks(2), 5) is False
        assert player.play_tracklist([], 0) is False
        assert _snapshot(player) == before


class TestNavigation:
    def test_next_and_previous(self, player):
        tracks = make_tracks(3)
        player.play_tracklist(tracks, 0)
        assert player.next() is True
        assert player.state.current_track is tracks[1]
        assert player.previous() is True
        assert player.state.current_track is tracks[0]

    def test_previous_at_start_is_noop(self, player):
        player.play_tracklist(make_tracks(3), 0)
        before = _snapshot(player)
        assert player.previous() is False
        assert _snapshot(player) == before

    def test_next_at_end_is_noop(self, player):
        player.play_tracklist(make_tracks(3), 2)
        before = _snapshot(player)
        assert player.next() is False
        assert _snapshot(player) == before

    def test_navigation_on_empty_history(self, player):
        assert player.next() is False
        assert player.previous() is False

    def test_index_stays_valid(self, player, media):
        player.play_tracklist(make_tracks(2), 1)
        for op in (player.next, player.previous, player.previous, player.next, player.stop, player.next):
            op()
            s = player.state
            assert 0 <= s.current_track_index < len(s.play_history)


class TestPauseResume:
    def test_pause_then_resume(self, player, media):
        player.play_track(make_tracks(1)[0])
        assert player.pause() is True
        assert player.state.status == PlaybackStatus.PAUSED
        assert player.pause() is False
        assert player.resume() is True
        assert player.state.is_playing is True
        assert player.resume() is False

    def test_without_resource(self, player):
        assert player.pause() is False
        assert player.resume() is False


class TestStop:
    def test_stop_keeps_history_and_remembers_last_track(self, player, media, clock):
        tracks = make_tracks(2)
        player.play_tracklist(tracks, 0)
        assert player.stop() is True
        s = player.state
        assert s.current_track is None
        assert s.last_track is tracks[0]
        assert s.is_playing is False
        assert s.status == PlaybackStatus.IDLE
        assert s.stop_reason == StopReason.STOPPED
        assert s.play_history == tracks
        assert "seek:0.0" in media.created[0].calls
        assert player.get_current_track() is tracks[0]

        clock.advance(5.0)
        assert s.last_track is None
        assert player.get_current_track() is None

    def test_new_track_cancels_grace_timer(self, player, clock):
        a, b = make_tracks(2)
        player.play_track(a)
        player.stop()
        clock.advance(2.0)
        player.play_track(b)
        clock.advance(10.0)
        assert player.state.last_track is b

    def test_stop_without_resource(self, player):
        assert player.stop() is False

    def test_resume_after_stop_is_noop(self, player):
        player.play_track(make_tracks(1)[0])
        player.stop()
        assert player.resume() is False


class TestCompletion:
    def test_auto_advance_through_history(self, player, media):
        tracks = make_tracks(3)
        player.play_tracklist(tracks, 0)
        media.created[-1].emit(MediaEvent.ENDED)
        assert player.state.current_track is tracks[1]
        assert player.state.current_track_index == 1

    def test_album_tracks_are_appended_lazily(self, player, media):
        album = make_tracks(3)
        player.play_tracklist(album, 1)
        # history holds only the album up to the current track
        player.state.play_history.pop()
        media.created[-1].emit(MediaEvent.ENDED)
        s = player.state
        assert s.play_history[-1] is album[2]
        assert s.current_track_index == len(s.play_history) - 1
        assert s.current_track is album[2]

    def test_last_track_ends_like_stop(self, player, media, clock):
        tracks = make_tracks(2)
        player.play_tracklist(tracks, 1)
        media.created[-1].emit(MediaEvent.ENDED)
        s = player.state
        assert s.current_track is None
        assert s.last_track is tracks[1]
        assert s.stop_reason == StopReason.ENDED
        assert clock.pending == 1

    def test_error_releases_resource(self, player, media, clock):
        track = make_tracks(1)[0]
        player.play_track(track)
        media.created[0].emit(MediaEvent.ERROR)
        s = player.state
        assert s.resource is None
        assert media.created[0].released is True
        assert s.last_track is track
        assert s.stop_reason == StopReason.ERROR
        clock.advance(5.0)
        assert s.last_track is None


class TestHistoryReset:
    def test_clear_play_history(self, player):
        player.play_tracklist(make_tracks(3), 1)
        player.clear_play_history()
        s = player.state
        assert s.play_history == []
        assert s.current_track_index == 0
        assert s.current_album_tracks == []
        assert s.current_album_start_index == 0


class TestQueries:
    def test_is_track_playing(self, player, media):
        a, b = make_tracks(2)
        player.play_track(a)
        media.created[0].emit(MediaEvent.PLAY)
        assert player.is_track_playing(a) is True
        assert player.is_track_playing(b) is False

    def test_seek(self, player, media):
        player.play_track(make_tracks(1)[0])
        assert player.seek(42.0) is True
        assert player.state.current_time == 42.0
        assert "seek:42.0" in media.created[0].calls

    def test_is_product_loaded(self, player):
        player.play_tracklist(make_tracks(2, product="p9", content="doc-9"), 0)
        assert player.is_product_loaded(ProductKey("p9", None)) is True
        assert player.is_product_loaded(ProductKey(None, "doc-9")) is True
        assert player.is_product_loaded(ProductKey("p1", "doc-1")) is False


class TestApplyEnrichedTracklist:
    def test_patches_in_place_and_notifies(self, player, bus):
        tracks = make_tracks(2)
        player.play_tracklist(tracks, 0)
        calls = []
        bus.subscribe(lambda: calls.append(1))

        enriched = [
            TracklistEntry(title="Unfinished Sympathy", artist="Massive Attack"),
            TracklistEntry(title="Safe From Harm", artist="Massive Attack"),
        ]
        changed = player.apply_enriched_tracklist(ProductKey("p1", "doc-1"), enriched)

        assert changed == 2
        assert tracks[0].title == "Unfinished Sympathy"
        assert player.state.current_track.title == "Unfinished Sympathy"
        assert player.state.play_history[1].title == "Safe From Harm"
        assert player.state.current_album_tracks[1] is tracks[1]
        assert calls == [1]

    def test_matches_by_audio_url(self, player):
        track = make_tracks(1, product="other")[0]
        player.play_track(track)
        entry = TracklistEntry(title="Teardrop", url=track.audio_url)
        assert player.apply_enriched_tracklist(ProductKey("p1", "doc-1"), [entry]) == 1
        assert track.title == "Teardrop"

    def test_unrelated_product_untouched(self, player, bus):
        player.play_tracklist(make_tracks(2), 0)
        calls = []
        bus.subscribe(lambda: calls.append(1))
        changed = player.apply_enriched_tracklist(
            ProductKey("zzz", "doc-z"), [TracklistEntry(title="Nope")]
        )
        assert changed == 0
        assert calls == []


class TestUnplayableNeighbours:
    def _with_gap(self):
        t1, t2, t3 = make_tracks(3)
        t2.audio_url = None
        return t1, t2, t3

    def test_next_onto_track_without_locator_changes_nothing(self, player, media):
        t1, t2, t3 = self._with_gap()
        player.play_tracklist([t1, t2, t3], 0)
        before = _snapshot(player)
        assert player.next() is False
        assert _snapshot(player) == before
        assert player.state.play_history[player.state.current_track_index] is player.state.current_track

    def test_previous_onto_track_without_locator_changes_nothing(self, player):
        t1, t2, t3 = self._with_gap()
        player.play_tracklist([t1, t2, t3], 2)
        assert player.previous() is False
        assert player.state.current_track_index == 2
        assert player.state.current_track is t3

    def test_ended_before_unplayable_track_resolves_to_idle(self, player, media):
        t1, t2, t3 = self._with_gap()
        player.play_tracklist([t1, t2, t3], 0)
        media.created[0].emit(MediaEvent.READY)
        media.created[0].emit(MediaEvent.ENDED)
        s = player.state
        assert s.status == PlaybackStatus.IDLE
        assert s.is_playing is False
        assert s.current_track is None
        assert s.last_track is t1
        assert s.current_track_index == 0
        assert s.stop_reason == StopReason.ENDED


class TestSingleOutsideQueue:
    def test_single_ending_does_not_jump_into_history(self, player, media):
        album = make_tracks(3)
        player.play_tracklist(album, 0)
        single = make_tracks(1, product="p2", content="doc-2")[0]
        player.play_track(single)

        media.created[-1].emit(MediaEvent.ENDED)

        s = player.state
        assert s.current_track is None
        assert s.last_track is single
        assert s.stop_reason == StopReason.ENDED
        assert len(media.created) == 2


class TestStopFade:
    def _player(self, media, bus, clock):
        from mixtape_player.services.playback import PlaybackController

        return PlaybackController(media, bus, grace_period=5.0, stop_fade=0.4, call_later=clock.call_later)

    def test_volume_ramps_down_then_stops(self, media, bus, clock):
        player = self._player(media, bus, clock)
        track = make_tracks(1)[0]
        player.play_track(track)
        res = media.created[0]

        assert player.stop() is True
        for _ in range(10):
            clock.advance(0.02)
        assert 0.0 < res.volume < 1.0
        assert player.state.current_track is track

        for _ in range(10):
            clock.advance(0.02)
        s = player.state
        assert s.current_track is None
        assert s.last_track is track
        assert s.stop_reason == StopReason.STOPPED
        assert "seek:0.0" in res.calls
        assert res.volume == 1.0

    def test_new_track_cancels_fade(self, media, bus, clock):
        player = self._player(media, bus, clock)
        a, b = make_tracks(2)
        player.play_track(a)
        player.stop()
        clock.advance(0.1)
        player.play_track(b)
        clock.advance(1.0)
        assert player.state.current_track is b
        assert player.state.stop_reason is None
