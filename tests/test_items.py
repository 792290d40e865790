import math

import pytest

from campusradio.items import (
    EMPTY, LIVE_STREAM, Episode, OnDemand, TelemetrySample, item_to_dict,
    make_sample, same_item,
)


def test_episode_equality_is_identity_only():
    a = Episode(id="42", title="Old title", url="http://x/a.mp3")
    b = Episode(id="42", title="New title", url="http://mirror/a.mp3", artwork="x.jpg")
    assert a == b
    assert hash(a) == hash(b)
    assert a != Episode(id="43", title="Old title", url="http://x/a.mp3")


def test_same_item():
    ep = Episode(id="1", title="t", url="u")
    assert same_item(EMPTY, EMPTY)
    assert same_item(LIVE_STREAM, LIVE_STREAM)
    assert same_item(OnDemand(ep), OnDemand(Episode(id="1", title="other", url="v")))
    assert not same_item(OnDemand(ep), OnDemand(Episode(id="2", title="t", url="u")))
    assert not same_item(LIVE_STREAM, EMPTY)
    assert not same_item(OnDemand(ep), LIVE_STREAM)


def test_episode_from_dict():
    ep = Episode.from_dict({"id": 7, "title": "Seven", "url": "http://x/7.mp3"})
    assert ep.id == "7"
    assert ep.artwork is None
    assert ep.to_dict()["url"] == "http://x/7.mp3"


def test_episode_from_dict_missing_fields():
    with pytest.raises(ValueError, match="title, url"):
        Episode.from_dict({"id": "1"})


def test_item_to_dict():
    assert item_to_dict(EMPTY) == {"kind": "empty"}
    assert item_to_dict(LIVE_STREAM) == {"kind": "live"}
    ep = Episode(id="1", title="t", url="u")
    assert item_to_dict(OnDemand(ep))["episode"]["id"] == "1"


@pytest.mark.parametrize("duration", [None, math.inf, math.nan, 0.0])
def test_make_sample_without_meaningful_duration(duration):
    assert make_sample(12.0, duration) is None


def test_make_sample():
    assert make_sample(-0.2, 100.0) == TelemetrySample(0.0, 100.0)
    assert make_sample(25.0, 100.0).progress == 0.25
