"""
Campus Radio — playback coordinator for a campus radio live stream and its
podcast episodes.

  items.py        PlayingItem / PlaybackStatus / TelemetrySample
  coordinator.py  PlaybackCoordinator (state machine, telemetry, title loop)
  metadata.py     now-playing title fetcher for the live stream
  players/        media engines (mpv)
  service.py      HTTP + WebSocket front for remote clients
"""

__version__ = "1.0.0"
