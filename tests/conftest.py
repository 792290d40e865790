"""Shared fixtures: a coordinator wired to fake engine and fetcher."""

import logging

import pytest

from campusradio.coordinator import PlaybackCoordinator
from campusradio.items import Episode
from campusradio.lib import config
from fakes import LIVE_URL, META_URL, FakeEngine, FakeFetcher


@pytest.fixture(autouse=True)
def empty_config(monkeypatch):
    """Run every test against an empty config, never the machine's."""
    monkeypatch.setattr(config, "_config", {})


@pytest.fixture(name="caplog")
def caplog_fixture(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    """Set log level to debug for tests using the caplog fixture."""
    caplog.set_level(logging.DEBUG)
    return caplog


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def coordinator(engine, fetcher):
    return PlaybackCoordinator(
        engine, fetcher,
        live_url=LIVE_URL,
        metadata_url=META_URL,
        station="Campuswelle",
        refresh_interval=120,
        retry_interval=5,
        telemetry_interval=0.01,
    )


@pytest.fixture
def episode(engine):
    engine.durations["http://radio.test/ep1.mp3"] = 300.0
    return Episode(id="ep1", title="Episode One", url="http://radio.test/ep1.mp3",
                   artwork="http://radio.test/ep1.jpg")


@pytest.fixture
def other_episode(engine):
    engine.durations["http://radio.test/ep2.mp3"] = 600.0
    return Episode(id="ep2", title="Episode Two", url="http://radio.test/ep2.mp3")
