# tests/test_recorder.py
import time

import pytest

from wayfinder.errors import PathTooShortError, PreconditionError
from wayfinder.gps import GeoSampler
from wayfinder.recorder import PathRecorder, RecorderState, RoadDrawer

from helpers import ListSource, loc


def walk(n, step=0.0001):
    return [loc(0, (i + 1) * step) for i in range(n)]


def test_short_recording_is_discarded(store, reception):
    store.set_reception(reception)
    recorder = PathRecorder(store)

    recorder.start("12")
    for sample in walk(5):
        assert recorder.on_sample(sample)

    with pytest.raises(PathTooShortError) as exc:
        recorder.stop()

    assert exc.value.point_count == 6
    assert exc.value.minimum == 10
    assert recorder.state is RecorderState.IDLE
    assert store.version() == 1
    assert store.load().houses == ()
    assert store.load().roads == ()


def test_recording_commits_house_and_road_together(store, reception):
    store.set_reception(reception)
    recorder = PathRecorder(store)
    samples = walk(9)

    recorder.start(" 12 ")
    for sample in samples:
        recorder.on_sample(sample)
    house, road = recorder.stop()

    snapshot = store.load()
    assert snapshot.version == 2
    assert snapshot.houses == (house,)
    assert snapshot.roads == (road,)
    assert house.number == "12"
    assert house.location == samples[-1]
    assert road.points[0] == reception
    assert road.points[-1] == house.location
    assert len(road.points) == 10
    assert not recorder.is_recording


def test_jitter_below_epsilon_is_dropped(store, reception):
    store.set_reception(reception)
    recorder = PathRecorder(store)

    recorder.start("3")
    for _ in range(20):
        assert not recorder.on_sample(loc(0, 0.000001))

    assert recorder.points == (reception,)
    assert recorder.dropped == 20


def test_filter_compares_with_last_kept_point(store, reception):
    store.set_reception(reception)
    recorder = PathRecorder(store)

    recorder.start("3")
    recorder.on_sample(loc(0, 0.000008))
    recorder.on_sample(loc(0, 0.000016))

    # Each step is under epsilon but the second is far enough from reception
    assert recorder.points == (reception, loc(0, 0.000016))


def test_start_requires_reception(store):
    recorder = PathRecorder(store)
    with pytest.raises(PreconditionError):
        recorder.start("1")
    assert recorder.state is RecorderState.IDLE


def test_start_validates_state_and_label(store, reception):
    store.set_reception(reception)
    recorder = PathRecorder(store)

    with pytest.raises(PreconditionError):
        recorder.start("  ")
    with pytest.raises(PreconditionError):
        recorder.stop()

    recorder.start("1")
    with pytest.raises(PreconditionError):
        recorder.start("2")


def test_samples_outside_recording_are_ignored(store):
    recorder = PathRecorder(store)
    assert not recorder.on_sample(loc(1, 1))
    assert recorder.points == ()


def test_cancel_discards_path(store, reception):
    store.set_reception(reception)
    recorder = PathRecorder(store)
    recorder.start("1")
    for sample in walk(12):
        recorder.on_sample(sample)

    recorder.cancel()

    assert recorder.state is RecorderState.IDLE
    assert recorder.points == ()
    assert store.version() == 1


def test_live_samples_feed_recording(store, reception):
    store.set_reception(reception)
    samples = walk(9)
    source = ListSource(samples)
    sampler = GeoSampler(source, interval=0.01, timeout=1)
    recorder = PathRecorder(store, sampler=sampler)

    recorder.start("5")
    deadline = time.time() + 5
    while len(recorder.points) < 10 and time.time() < deadline:
        time.sleep(0.01)
    house, road = recorder.stop()

    assert house.location == samples[-1]
    assert len(road.points) == 10
    assert recorder._watch is None


def test_road_drawer_keeps_short_draft(store):
    drawer = RoadDrawer(store)
    drawer.add_point(loc(0, 0))

    with pytest.raises(PathTooShortError):
        drawer.finish()
    assert drawer.points == (loc(0, 0),)
    assert store.version() == 0

    drawer.add_point(loc(0, 1))
    road = drawer.finish()

    assert road.points == (loc(0, 0), loc(0, 1))
    assert drawer.points == ()
    assert store.load().roads == (road,)


def test_road_drawer_does_not_filter_points(store):
    drawer = RoadDrawer(store)
    drawer.add_point(loc(0, 0))
    drawer.add_point(loc(0, 0))
    road = drawer.finish()
    assert len(road.points) == 2
