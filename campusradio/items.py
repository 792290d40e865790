# Campus Radio
# Copyright (C) 2026 Campus Radio contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Playback data model.

A coordinator always has exactly one current PlayingItem:

    EMPTY            nothing loaded, all controls disabled
    LIVE_STREAM      the station's live stream (no seeking, lazy release)
    OnDemand(ep)     a podcast episode (seekable, buffered while paused)

Status is never stored — it is derived from the item and the engine handle.
"""

import enum
import math
from dataclasses import dataclass, field
from typing import NamedTuple


@dataclass(frozen=True)
class Episode:
    """A piece of on-demand content. Equality is the episode id only."""

    id: str
    title: str = field(compare=False)
    url: str = field(compare=False)
    artwork: str | None = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: dict) -> "Episode":
        """Build an episode from a JSON body. Raises ValueError if incomplete."""
        missing = [k for k in ("id", "title", "url") if not data.get(k)]
        if missing:
            raise ValueError(f"episode missing {', '.join(missing)}")
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            url=str(data["url"]),
            artwork=data.get("artwork") or None,
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "url": self.url,
                "artwork": self.artwork}


class _Singleton:
    """Base for the two payload-free item kinds."""

    kind = ""

    def __repr__(self):
        return f"<{self.kind}>"


class Empty(_Singleton):
    kind = "empty"


class LiveStream(_Singleton):
    kind = "live"


@dataclass(frozen=True)
class OnDemand:
    episode: Episode
    kind = "episode"


PlayingItem = Empty | LiveStream | OnDemand

EMPTY = Empty()
LIVE_STREAM = LiveStream()


def same_item(a: PlayingItem, b: PlayingItem) -> bool:
    """True if *a* and *b* select the same source (episodes compared by id)."""
    match a, b:
        case Empty(), Empty():
            return True
        case LiveStream(), LiveStream():
            return True
        case OnDemand(episode=x), OnDemand(episode=y):
            return x == y
        case _:
            return False


def item_to_dict(item: PlayingItem) -> dict:
    match item:
        case OnDemand(episode=ep):
            return {"kind": item.kind, "episode": ep.to_dict()}
        case _:
            return {"kind": item.kind}


class PlaybackStatus(str, enum.Enum):
    EMPTY = "empty"
    PAUSED = "paused"
    PLAYING = "playing"


class TelemetrySample(NamedTuple):
    position: float
    duration: float

    @property
    def progress(self) -> float:
        """Fraction played, 0.0 when the duration is zero."""
        if self.duration <= 0:
            return 0.0
        return min(max(self.position / self.duration, 0.0), 1.0)


def make_sample(position: float | None, duration: float | None) -> TelemetrySample | None:
    """Build a sample, or None when the duration is unknown or indefinite."""
    if duration is None or position is None:
        return None
    if not math.isfinite(duration) or duration <= 0:
        return None
    return TelemetrySample(max(float(position), 0.0), float(duration))
