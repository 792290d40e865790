# Campus Radio
# Copyright (C) 2026 Campus Radio contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
PlaybackService — HTTP + WebSocket front for the playback coordinator.

Remote clients (the app UI, hardware remotes) drive playback over HTTP and
receive telemetry over a push-only WebSocket:

    GET  /ws                 media_update stream (position, title, item)
    POST /player/play        resume (reopens a paused live stream)
    POST /player/pause
    POST /player/toggle
    POST /player/stop        unload everything
    POST /player/live        switch to the live stream
    POST /player/episode     {"id", "title", "url", "artwork"?}
    POST /player/seek        {"delta": seconds} or {"fraction": 0..1}
    GET  /player/state       {"state": "empty"|"paused"|"playing"}
    GET  /player/status      full status dict
    POST /command            {"action": "play"|"left"|...} remote buttons

Remote button actions are only accepted once playback has started at least
once (the coordinator signals "begin receiving remote commands").

Config (config.json):
    "service": { "port": 8780 }
"""

import asyncio
import json
import logging
import math
import signal

from aiohttp import web

from .coordinator import PlaybackCoordinator
from .items import EMPTY, LIVE_STREAM, Episode, PlaybackStatus, TelemetrySample, item_to_dict
from .lib.config import cfg, config_path
from .lib.engine_base import MediaEngine
from .metadata import MetadataFetcher
from .players.mpv import MpvEngine

log = logging.getLogger(__name__)

DEFAULT_PORT = 8780
SEEK_INTERVAL = 15  # seconds per left/right press


class PlaybackService:
    name = "Campus Radio"
    action_map = {       # remote action → command name
        "play": "toggle",
        "pause": "toggle",
        "go": "toggle",
        "left": "rewind",
        "right": "forward",
        "stop": "stop",
    }

    def __init__(self, engine: MediaEngine | None = None,
                 fetcher: MetadataFetcher | None = None,
                 port: int | None = None):
        self._engine = engine
        self._fetcher = fetcher
        self.port = port if port is not None else cfg("service", "port", default=DEFAULT_PORT)
        self.seek_interval = cfg("playback", "seek_interval", default=SEEK_INTERVAL)
        self._coordinator: PlaybackCoordinator | None = None
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._runner: web.AppRunner | None = None
        self._last_sample: TelemetrySample | None = None
        self.remote_commands_enabled = False
        self._tasks: set[asyncio.Task] = set()

    # ── Coordinator (created on first access, lives as long as the process) ──

    @property
    def coordinator(self) -> PlaybackCoordinator:
        if self._coordinator is None:
            if self._engine is None:
                self._engine = MpvEngine()
            if self._fetcher is None:
                self._fetcher = MetadataFetcher(
                    timeout=cfg("titles", "fetch_timeout", default=10))
            self._coordinator = PlaybackCoordinator(
                self._engine, self._fetcher,
                on_remote_commands=self._enable_remote_commands)
            self._coordinator.position_observer = self._on_position
            self._coordinator.title_observer = self._on_title
            log.info("Playback coordinator ready (live: %s)", self._coordinator.live_url)
        return self._coordinator

    def _enable_remote_commands(self):
        if not self.remote_commands_enabled:
            log.info("Now receiving remote commands")
        self.remote_commands_enabled = True

    # ── Telemetry → WebSocket ──

    def _on_position(self, sample: TelemetrySample | None):
        self._last_sample = sample
        self._schedule_broadcast("position")

    def _on_title(self, title: str | None):
        self._schedule_broadcast("title")

    def _schedule_broadcast(self, reason: str):
        if not self._ws_clients:
            return
        task = asyncio.get_running_loop().create_task(
            self.broadcast_media_update(self.media_data(), reason))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def media_data(self) -> dict:
        coordinator = self.coordinator
        sample = self._last_sample
        return {
            "state": coordinator.status.value,
            "item": item_to_dict(coordinator.current_item),
            "title": coordinator.current_title,
            "position": sample.position if sample else None,
            "duration": sample.duration if sample else None,
            "now_playing": coordinator.now_playing(),
        }

    async def broadcast_media_update(self, media_data: dict, reason: str = "update"):
        """Push a media_update to all connected WebSocket clients."""
        if not self._ws_clients:
            return

        message = json.dumps({
            "type": "media_update",
            "reason": reason,
            "data": media_data,
        })

        disconnected = set()
        for ws in self._ws_clients:
            try:
                await ws.send_str(message)
            except Exception:
                disconnected.add(ws)
        self._ws_clients -= disconnected

        log.debug("Broadcast media update to %d clients: %s",
                  len(self._ws_clients), reason)

    # ── HTTP + WebSocket server ──

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/ws", self._handle_ws)
        app.router.add_post("/player/play", self._handle_play)
        app.router.add_post("/player/pause", self._handle_pause)
        app.router.add_post("/player/toggle", self._handle_toggle)
        app.router.add_post("/player/stop", self._handle_stop)
        app.router.add_post("/player/live", self._handle_live)
        app.router.add_post("/player/episode", self._handle_episode)
        app.router.add_post("/player/seek", self._handle_seek)
        app.router.add_get("/player/state", self._handle_state)
        app.router.add_get("/player/status", self._handle_status)
        app.router.add_post("/command", self._handle_command)
        app.router.add_options("/command", self._handle_cors)
        return app

    async def start(self):
        """Create the aiohttp app, start listening."""
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        log.info("%s: HTTP + WebSocket on port %d", self.name, self.port)

    async def run(self):
        """Convenience entry-point: start + wait for signal + stop."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await stop_event.wait()
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Unload playback and release engine, HTTP session and sockets."""
        if self._coordinator is not None:
            self._coordinator.current_item = EMPTY
        if self._engine is not None:
            await self._engine.shutdown()
        if self._fetcher is not None:
            await self._fetcher.close()
        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        log.info("%s stopped", self.name)

    # ── WebSocket handler ──

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        # Snapshot before joining the broadcast set so the first message is this one
        media_data = self.media_data()
        self._ws_clients.add(ws)
        log.info("WebSocket client connected (%d total)", len(self._ws_clients))

        try:
            await ws.send_json({
                "type": "media_update",
                "reason": "client_connect",
                "data": media_data,
            })
            async for msg in ws:
                pass  # push-only
        finally:
            self._ws_clients.discard(ws)
            log.info("WebSocket client disconnected (%d remaining)",
                     len(self._ws_clients))

        return ws

    # ── HTTP route handlers ──

    def _cors_headers(self):
        return {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        }

    def _ok(self, **extra) -> web.Response:
        body = {"status": "ok", "state": self.coordinator.status.value}
        body.update(extra)
        return web.json_response(body, headers=self._cors_headers())

    def _error(self, message: str, status: int = 400) -> web.Response:
        return web.json_response({"status": "error", "message": message},
                                 status=status, headers=self._cors_headers())

    async def _json_body(self, request: web.Request) -> dict:
        try:
            data = await request.json()
        except Exception:
            return {}
        return data if isinstance(data, dict) else {}

    async def _handle_cors(self, request: web.Request) -> web.Response:
        return web.Response(headers=self._cors_headers())

    async def _handle_play(self, request: web.Request) -> web.Response:
        self.coordinator.play()
        return self._ok()

    async def _handle_pause(self, request: web.Request) -> web.Response:
        self.coordinator.pause()
        return self._ok()

    async def _handle_toggle(self, request: web.Request) -> web.Response:
        self.toggle()
        return self._ok()

    async def _handle_stop(self, request: web.Request) -> web.Response:
        self.coordinator.current_item = EMPTY
        return self._ok()

    async def _handle_live(self, request: web.Request) -> web.Response:
        self.coordinator.current_item = LIVE_STREAM
        return self._ok()

    async def _handle_episode(self, request: web.Request) -> web.Response:
        data = await self._json_body(request)
        try:
            episode = Episode.from_dict(data)
        except ValueError as e:
            return self._error(str(e))
        self.coordinator.play_item(episode)
        return self._ok(item=item_to_dict(self.coordinator.current_item))

    async def _handle_seek(self, request: web.Request) -> web.Response:
        data = await self._json_body(request)
        if "delta" in data:
            key, seek = "delta", self.coordinator.seek_relative
        elif "fraction" in data:
            key, seek = "fraction", self.coordinator.seek_absolute
        else:
            return self._error("expected 'delta' or 'fraction'")
        try:
            value = float(data[key])
        except (TypeError, ValueError):
            return self._error("seek value must be a number")
        if not math.isfinite(value):
            return self._error("seek value must be finite")
        if not seek(value):
            return self._error("current item is not seekable", status=409)
        return self._ok()

    async def _handle_state(self, request: web.Request) -> web.Response:
        return web.json_response({"state": self.coordinator.status.value},
                                 headers=self._cors_headers())

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self.get_status(), headers=self._cors_headers())

    def get_status(self) -> dict:
        coordinator = self.coordinator
        return {
            "name": self.name,
            "media": self.media_data(),
            "live_url": coordinator.live_url,
            "title_fetch_in_flight": coordinator.title_fetch_in_flight,
            "next_title_refresh": coordinator.pending_title_refresh,
            "remote_commands": self.remote_commands_enabled,
            "ws_clients": len(self._ws_clients),
            "config": config_path(),
        }

    # ── Remote buttons ──

    async def _handle_command(self, request: web.Request) -> web.Response:
        data = await self._json_body(request)
        action = data.get("action", "")
        cmd = self.action_map.get(action)
        if cmd is None:
            return self._error(f"Unknown action: {action}")
        if not self.remote_commands_enabled:
            log.info("Ignoring remote %s — playback not started yet", action)
            return self._error("remote commands not enabled", status=409)
        log.info("Remote %s → %s", action, cmd)
        self.handle_command(cmd)
        return self._ok(command=cmd)

    def handle_command(self, cmd: str):
        if cmd == "toggle":
            self.toggle()
        elif cmd == "rewind":
            self.coordinator.seek_relative(-self.seek_interval)
        elif cmd == "forward":
            self.coordinator.seek_relative(self.seek_interval)
        elif cmd == "stop":
            self.coordinator.current_item = EMPTY

    def toggle(self):
        if self.coordinator.status == PlaybackStatus.PLAYING:
            self.coordinator.pause()
        else:
            self.coordinator.play()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    service = PlaybackService()
    asyncio.run(service.run())


if __name__ == "__main__":
    main()
