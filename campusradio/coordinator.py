# Campus Radio
# Copyright (C) 2026 Campus Radio contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
PlaybackCoordinator — owns the one thing that is playing.

The coordinator holds the current PlayingItem, the engine handle bound to
it, and the live-stream title cache.  Everything runs on the asyncio event
loop: commands from the service, periodic position ticks from the engine,
and title fetch completions are all just callbacks on that loop, so state
is only ever touched from one place at a time.

Item transitions (assigning ``current_item``):
    1. open a handle for the new item (none for EMPTY)
    2. close the old handle and its position observer
    3. LIVE_STREAM → fetch the title right away
    4. autoplay the new handle, re-arm the position observer
    5. push a cleared sample and the new title to the observers

Live stream specifics:
    pause() releases the handle entirely; play() reopens it (and refetches
    the title).  While live is selected the title is refetched every
    ``refresh_interval`` seconds, or ``retry_interval`` after a failure.

Observers:
    position_observer(sample | None)   ~1/s while a handle exists
    title_observer(title | None)       on registration and on every change
"""

import asyncio
import json
import logging
import math
from typing import Callable

from .items import (
    EMPTY, LIVE_STREAM, Empty, Episode, LiveStream, OnDemand, PlaybackStatus,
    PlayingItem, TelemetrySample, make_sample, same_item,
)
from .lib.config import cfg
from .lib.engine_base import MediaEngine, MediaHandle, ObserverToken
from .metadata import MalformedMetadata, MetadataFetchError, MetadataFetcher, parse_title

log = logging.getLogger(__name__)

LIVE_STREAM_URL = "http://campuswelle.uni-ulm.de:8000/listen.mp3"
METADATA_URL = ("http://campuswelle.uni-ulm.de/wp-content/themes/campuswelle/"
                "stream-meta_api.php?amount=1")
STATION_NAME = "Campuswelle"

TITLE_REFRESH_INTERVAL = 120  # seconds between successful fetches
TITLE_RETRY_INTERVAL = 5      # seconds after a failed fetch
TELEMETRY_INTERVAL = 1.0

PositionObserver = Callable[[TelemetrySample | None], None]
TitleObserver = Callable[[str | None], None]


class PlaybackInvariantError(RuntimeError):
    """A non-empty item has no engine handle. Always a bug."""


class PlaybackCoordinator:

    def __init__(self, engine: MediaEngine, fetcher: MetadataFetcher, *,
                 live_url: str | None = None,
                 metadata_url: str | None = None,
                 station: str | None = None,
                 refresh_interval: float | None = None,
                 retry_interval: float | None = None,
                 telemetry_interval: float | None = None,
                 on_remote_commands: Callable[[], None] | None = None):
        self._engine = engine
        self._fetcher = fetcher
        self.live_url = live_url or cfg("stream", "url", default=LIVE_STREAM_URL)
        self.metadata_url = metadata_url or cfg("stream", "metadata_url", default=METADATA_URL)
        self.station = station or cfg("station", "name", default=STATION_NAME)
        self.refresh_interval = refresh_interval if refresh_interval is not None else \
            cfg("titles", "refresh_interval", default=TITLE_REFRESH_INTERVAL)
        self.retry_interval = retry_interval if retry_interval is not None else \
            cfg("titles", "retry_interval", default=TITLE_RETRY_INTERVAL)
        self.telemetry_interval = telemetry_interval if telemetry_interval is not None else \
            cfg("telemetry", "interval", default=TELEMETRY_INTERVAL)
        self._on_remote_commands = on_remote_commands

        self._item: PlayingItem = EMPTY
        self._handle: MediaHandle | None = None
        self._position_token: ObserverToken | None = None
        self._position_observer: PositionObserver | None = None
        self._title_observer: TitleObserver | None = None
        # Last title fetched for the live stream, kept across item changes
        self._live_title: str | None = None

        # Title refresh loop
        self._title_generation = 0
        self._title_task: asyncio.Task | None = None
        self._title_timer: asyncio.TimerHandle | None = None
        self._title_delay: float | None = None
        self.title_fetches = 0

    # ── Current item ──

    @property
    def current_item(self) -> PlayingItem:
        return self._item

    @current_item.setter
    def current_item(self, item: PlayingItem):
        self._transition(item)

    @property
    def handle(self) -> MediaHandle | None:
        return self._handle

    def _transition(self, item: PlayingItem):
        if same_item(item, self._item):
            match item:
                case LiveStream() if self._handle is None:
                    pass  # released by pause(), reopen below
                case _:
                    log.debug("Already on %r — nothing to do", item)
                    return

        # Open the new handle first; if the engine fails the old state stays intact
        match item:
            case Empty():
                handle = None
            case LiveStream():
                handle = self._engine.create_handle(self.live_url)
            case OnDemand(episode=episode):
                handle = self._engine.create_handle(episode.url)

        leaving_live = isinstance(self._item, LiveStream) and not isinstance(item, LiveStream)
        self._release_handle()
        if leaving_live:
            self._cancel_title_refresh()
        self._item = item
        self._handle = handle
        log.info("Current item → %r", item)

        if isinstance(item, LiveStream):
            self.refresh_title()

        if self._handle is not None:
            self._handle.play()
            self._arm_position_observer()

        self._emit_position(None)
        self._emit_title(self.current_title)

    def _release_handle(self):
        """Drop the position subscription first, then the handle itself."""
        handle = self._handle
        if handle is None:
            return
        self._disarm_position_observer()
        self._handle = None
        handle.close()
        log.debug("Released handle for %s", handle.locator)

    # ── Status ──

    @property
    def status(self) -> PlaybackStatus:
        match self._item:
            case Empty():
                return PlaybackStatus.EMPTY
            case LiveStream() if self._handle is None:
                return PlaybackStatus.PAUSED
            case _:
                if self._handle is None:
                    raise PlaybackInvariantError(f"{self._item!r} has no engine handle")
                return PlaybackStatus.PAUSED if self._handle.rate() == 0 else PlaybackStatus.PLAYING

    @property
    def current_title(self) -> str | None:
        match self._item:
            case OnDemand(episode=episode):
                return episode.title
            case LiveStream():
                return self._live_title
            case _:
                return None

    def now_playing(self) -> dict | None:
        """Lock-screen style info for the current item."""
        match self._item:
            case LiveStream():
                return {"artist": f"{self.station} Live",
                        "title": self._live_title or "", "artwork": None}
            case OnDemand(episode=episode):
                return {"artist": self.station, "title": episode.title,
                        "artwork": episode.artwork}
            case _:
                return None

    # ── Playback control ──

    def play_item(self, episode: Episode, focus: Callable[[], None] | None = None):
        """Switch to *episode* (no-op if it is already current) and play it."""
        self.current_item = OnDemand(episode)
        self._begin_remote_commands(focus)

    def play(self, focus: Callable[[], None] | None = None):
        """Resume the current item. A released live stream is reopened."""
        match self._item:
            case LiveStream() if self._handle is None:
                self._transition(LIVE_STREAM)
            case _:
                if self._handle is not None:
                    self._handle.play()
        self._begin_remote_commands(focus)

    def pause(self, focus: Callable[[], None] | None = None):
        """Pause. The live stream is released so it stops using bandwidth."""
        if self._handle is not None:
            self._handle.pause()
        if isinstance(self._item, LiveStream):
            self._release_handle()
            log.info("Live stream paused — handle released")
        self._begin_remote_commands(focus)

    def seek_relative(self, delta: float) -> bool:
        """Move by *delta* seconds, clamped to the episode. False if not seekable."""
        if not math.isfinite(delta):
            log.warning("Seek by %r rejected — not a finite number", delta)
            return False
        handle = self._seekable_handle()
        if handle is None:
            return False
        target = handle.current_position() + delta
        duration = handle.duration()
        if duration is not None and math.isfinite(duration):
            target = min(target, duration)
        if not math.isfinite(target):
            return False
        target = max(target, 0.0)
        handle.seek(target)
        log.debug("Seek %+.1fs → %.1fs", delta, target)
        return True

    def seek_absolute(self, fraction: float) -> bool:
        """Jump to *fraction* (0..1) of the episode. False if not seekable."""
        if not math.isfinite(fraction):
            log.warning("Seek to %r rejected — not a finite number", fraction)
            return False
        handle = self._seekable_handle()
        if handle is None:
            return False
        duration = handle.duration()
        if duration is None or not math.isfinite(duration):
            log.debug("Seek to %.2f ignored — duration not known yet", fraction)
            return False
        fraction = min(max(fraction, 0.0), 1.0)
        handle.seek(fraction * duration)
        return True

    def _seekable_handle(self) -> MediaHandle | None:
        match self._item:
            case OnDemand():
                if self._handle is None:
                    raise PlaybackInvariantError(f"{self._item!r} has no engine handle")
                return self._handle
            case _:
                log.debug("Seek ignored for %r", self._item)
                return None

    def _begin_remote_commands(self, focus: Callable[[], None] | None):
        if self._on_remote_commands:
            self._on_remote_commands()
        if focus:
            focus()

    # ── Position telemetry ──

    @property
    def position_observer(self) -> PositionObserver | None:
        return self._position_observer

    @position_observer.setter
    def position_observer(self, observer: PositionObserver | None):
        self._disarm_position_observer()
        self._position_observer = observer
        self._arm_position_observer()

    def _arm_position_observer(self):
        if self._position_observer is None or self._handle is None:
            return
        self._position_token = self._handle.add_periodic_observer(
            self.telemetry_interval, self._on_position_tick)

    def _disarm_position_observer(self):
        if self._position_token is not None and self._handle is not None:
            self._handle.remove_observer(self._position_token)
        self._position_token = None

    def _on_position_tick(self, handle: MediaHandle):
        if handle is not self._handle:
            return  # late tick from a released handle
        self._emit_position(make_sample(handle.current_position(), handle.duration()))

    def _emit_position(self, sample: TelemetrySample | None):
        if self._position_observer is not None:
            self._position_observer(sample)

    # ── Title telemetry ──

    @property
    def title_observer(self) -> TitleObserver | None:
        return self._title_observer

    @title_observer.setter
    def title_observer(self, observer: TitleObserver | None):
        self._title_observer = observer
        self._emit_title(self.current_title)

    def _emit_title(self, title: str | None):
        if self._title_observer is not None:
            self._title_observer(title)

    # ── Title refresh loop ──

    @property
    def pending_title_refresh(self) -> float | None:
        """Delay of the scheduled title refresh, or None if none is scheduled."""
        return self._title_delay if self._title_timer is not None else None

    @property
    def title_fetch_in_flight(self) -> bool:
        return self._title_task is not None and not self._title_task.done()

    def refresh_title(self):
        """Fetch the live title now, unless a fetch is already running."""
        if not isinstance(self._item, LiveStream):
            return
        if self.title_fetch_in_flight:
            log.debug("Title fetch already in flight — not starting another")
            return
        if self._title_timer is not None:
            self._title_timer.cancel()
            self._title_timer = None
        self.title_fetches += 1
        self._title_task = asyncio.get_running_loop().create_task(
            self._fetch_title(self._title_generation))

    def _title_is_stale(self, generation: int) -> bool:
        return generation != self._title_generation or not isinstance(self._item, LiveStream)

    async def _fetch_title(self, generation: int):
        try:
            raw = await self._fetcher.fetch(self.metadata_url)
            title = parse_title(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, MalformedMetadata) as e:
            self._title_fetch_failed(generation, f"invalid metadata: {e}")
            return
        except MetadataFetchError as e:
            self._title_fetch_failed(generation, str(e))
            return
        except Exception as e:
            self._title_fetch_failed(generation, f"unexpected error: {e!r}")
            return
        finally:
            if self._title_task is asyncio.current_task():
                self._title_task = None

        if self._title_is_stale(generation):
            log.debug("Dropping title %r — live stream no longer current", title)
            return
        self._schedule_title_refresh(generation, self.refresh_interval)
        if title != self._live_title:
            log.info("Live title: %s", title)
        self._live_title = title
        self._emit_title(title)

    def _title_fetch_failed(self, generation: int, reason: str):
        if self._title_is_stale(generation):
            return
        log.warning("Title refresh failed (%s) — retrying in %ss", reason, self.retry_interval)
        self._schedule_title_refresh(generation, self.retry_interval)

    def _schedule_title_refresh(self, generation: int, delay: float):
        if self._title_timer is not None:
            self._title_timer.cancel()
        self._title_delay = delay
        self._title_timer = asyncio.get_running_loop().call_later(
            delay, self._on_title_timer, generation)

    def _on_title_timer(self, generation: int):
        self._title_timer = None
        if self._title_is_stale(generation):
            return
        self.refresh_title()

    def _cancel_title_refresh(self):
        self._title_generation += 1
        if self._title_timer is not None:
            self._title_timer.cancel()
            self._title_timer = None
        if self._title_task is not None and not self._title_task.done():
            self._title_task.cancel()
        self._title_task = None
