# Campus Radio
# Copyright (C) 2026 Campus Radio contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
MediaEngine / MediaHandle — the contract the playback coordinator drives.

An engine turns a source locator (URL) into a handle.  A handle is bound to
that one locator for its whole life; switching sources means closing the
handle and creating a new one.

Subclass contract:

    class MyEngine(MediaEngine):
        def create_handle(self, locator: str) -> MediaHandle: ...

    class MyHandle(MediaHandle):
        def play(self): ...
        def pause(self): ...
        def seek(self, seconds: float): ...
        def current_position(self) -> float: ...
        def duration(self) -> float | None: ...   # None = indefinite (live)
        def rate(self) -> float: ...              # 0.0 = paused
        def close(self): ...

Built-in (no override needed):
    add_periodic_observer(interval, cb) — calls cb(handle) every *interval*
                                          seconds on the running loop
    remove_observer(token)              — cancels one periodic observer

None of the methods block: commands are handed to the engine's own I/O and
the getters return the last values the engine reported.
"""

import asyncio
import itertools
import logging
from typing import Callable

log = logging.getLogger(__name__)

_token_ids = itertools.count(1)


class ObserverToken:
    """Registration handle returned by add_periodic_observer()."""

    def __init__(self, interval: float, callback: Callable):
        self.id = next(_token_ids)
        self.interval = interval
        self.callback = callback
        self.timer: asyncio.TimerHandle | None = None
        self.active = True

    def __repr__(self):
        return f"<ObserverToken {self.id} every {self.interval}s>"


class MediaHandle:
    locator: str = ""

    def __init__(self, locator: str):
        self.locator = locator
        self._observers: dict[int, ObserverToken] = {}
        self.closed = False

    # ── Abstract methods (subclass must implement) ──

    def play(self):
        raise NotImplementedError

    def pause(self):
        raise NotImplementedError

    def seek(self, seconds: float):
        """Jump to an absolute position in seconds."""
        raise NotImplementedError

    def current_position(self) -> float:
        raise NotImplementedError

    def duration(self) -> float | None:
        raise NotImplementedError

    def rate(self) -> float:
        raise NotImplementedError

    def close(self):
        """Release engine resources. Subclasses must call super().close()."""
        self.closed = True
        for token in list(self._observers.values()):
            self.remove_observer(token)

    # ── Periodic observers ──

    def add_periodic_observer(self, interval: float, callback: Callable) -> ObserverToken:
        """Call ``callback(self)`` every *interval* seconds until removed."""
        token = ObserverToken(interval, callback)
        self._observers[token.id] = token
        self._arm(token)
        log.debug("Armed %r on %s", token, self.locator)
        return token

    def remove_observer(self, token: ObserverToken | None):
        if token is None:
            return
        token.active = False
        if token.timer:
            token.timer.cancel()
            token.timer = None
        self._observers.pop(token.id, None)

    def _arm(self, token: ObserverToken):
        loop = asyncio.get_running_loop()
        token.timer = loop.call_later(token.interval, self._fire, token)

    def _fire(self, token: ObserverToken):
        if not token.active or self.closed:
            return
        try:
            token.callback(self)
        except Exception:
            log.exception("Periodic observer %r failed", token)
        if token.active and not self.closed:
            self._arm(token)


class MediaEngine:
    """Factory for handles. One engine per process."""

    def create_handle(self, locator: str) -> MediaHandle:
        raise NotImplementedError

    async def shutdown(self):
        """Called once when the service stops."""
