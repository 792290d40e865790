# Campus Radio
# Copyright (C) 2026 Campus Radio contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
mpv-backed media engine.

Each handle runs one mpv process bound to one URL and talks to it over the
JSON IPC socket:

    mpv --no-video --no-terminal --pause --input-ipc-server=SOCK URL

The handle observes ``time-pos``, ``duration`` and ``pause`` so the
synchronous getters answer from cached values.  Commands issued before the
IPC socket is up are queued and flushed once connected.

Config (config.json):
    "mpv": { "binary": "mpv", "audio_output": "pulse", "socket_dir": "/tmp" }
"""

import asyncio
import json
import logging
import os
import subprocess

from ..lib.config import cfg
from ..lib.engine_base import MediaEngine, MediaHandle

log = logging.getLogger(__name__)

CONNECT_ATTEMPTS = 50   # x 0.1 s
PROP_TIME_POS = 1
PROP_DURATION = 2
PROP_PAUSE = 3


class MpvHandle(MediaHandle):
    """One mpv process playing one locator."""

    def __init__(self, locator: str, socket_path: str,
                 binary: str = "mpv", audio_output: str = "pulse"):
        super().__init__(locator)
        self.socket_path = socket_path
        self.binary = binary
        self.audio_output = audio_output
        self.process: subprocess.Popen | None = None
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._pending: list[dict] = []
        self._write_tasks: set[asyncio.Task] = set()
        self._launch_task: asyncio.Task | None = None
        self._ipc_task: asyncio.Task | None = None
        # Cached properties reported by mpv
        self._position = 0.0
        self._duration: float | None = None
        self._paused = True

    # ── mpv lifecycle ──

    def start(self):
        """Spawn mpv in the background. Returns immediately."""
        self._launch_task = asyncio.get_running_loop().create_task(self._launch())

    def _mpv_running(self):
        return self.process is not None and self.process.poll() is None

    async def _launch(self):
        try:
            os.unlink(self.socket_path)
        except FileNotFoundError:
            pass

        env = os.environ.copy()
        env.setdefault("XDG_RUNTIME_DIR", f"/run/user/{os.getuid()}")
        cmd = [
            self.binary, f"--ao={self.audio_output}",
            "--no-video", "--no-terminal", "--idle=no", "--pause",
            f"--input-ipc-server={self.socket_path}",
            self.locator,
        ]
        try:
            self.process = subprocess.Popen(
                cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, env=env)
        except OSError as e:
            log.error("Could not start mpv for %s: %s", self.locator, e)
            return

        for _ in range(CONNECT_ATTEMPTS):
            await asyncio.sleep(0.1)
            if self.closed:
                return
            if self.process.poll() is not None:
                log.error("mpv exited immediately for %s", self.locator)
                return
            if os.path.exists(self.socket_path):
                try:
                    self._reader, self._writer = \
                        await asyncio.open_unix_connection(self.socket_path)
                    break
                except (ConnectionRefusedError, FileNotFoundError):
                    continue
        else:
            log.error("Could not connect to mpv IPC at %s", self.socket_path)
            return

        self._ipc_task = asyncio.create_task(self._read_ipc_events())
        for prop_id, name in ((PROP_TIME_POS, "time-pos"),
                              (PROP_DURATION, "duration"),
                              (PROP_PAUSE, "pause")):
            await self._write({"command": ["observe_property", prop_id, name]})
        pending, self._pending = self._pending, []
        for cmd_obj in pending:
            await self._write(cmd_obj)
        log.info("mpv ready for %s (%d queued commands)", self.locator, len(pending))

    # ── IPC communication ──

    def _send(self, cmd_obj: dict):
        """Queue or send a command without blocking the caller."""
        if self.closed:
            return
        if not self._writer:
            self._pending.append(cmd_obj)
            return
        task = asyncio.get_running_loop().create_task(self._write(cmd_obj))
        self._write_tasks.add(task)
        task.add_done_callback(self._write_tasks.discard)

    async def _write(self, cmd_obj: dict):
        if not self._writer:
            return
        try:
            self._writer.write(json.dumps(cmd_obj).encode() + b"\n")
            await self._writer.drain()
        except Exception as e:
            log.error("mpv IPC send error: %s", e)

    async def _read_ipc_events(self):
        """Background task — keeps the cached properties current."""
        try:
            while self._reader:
                line = await self._reader.readline()
                if not line:
                    break  # EOF — mpv closed
                try:
                    msg = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if msg.get("event") == "property-change":
                    self._apply_property(msg.get("name"), msg.get("data"))
        except asyncio.CancelledError:
            return
        except Exception as e:
            log.debug("IPC reader ended: %s", e)
        self._paused = True
        log.info("mpv for %s went away", self.locator)

    def _apply_property(self, name, value):
        if name == "time-pos":
            if isinstance(value, (int, float)):
                self._position = float(value)
        elif name == "duration":
            self._duration = float(value) if isinstance(value, (int, float)) else None
        elif name == "pause":
            self._paused = bool(value)

    # ── MediaHandle ──

    def play(self):
        self._paused = False
        self._send({"command": ["set_property", "pause", False]})

    def pause(self):
        self._paused = True
        self._send({"command": ["set_property", "pause", True]})

    def seek(self, seconds: float):
        self._position = seconds
        self._send({"command": ["seek", seconds, "absolute"]})

    def current_position(self) -> float:
        return self._position

    def duration(self) -> float | None:
        return self._duration

    def rate(self) -> float:
        if self._paused:
            return 0.0
        if self.process is not None and not self._mpv_running():
            return 0.0  # exited
        return 1.0

    def close(self):
        super().close()
        self._pending.clear()
        for task in (self._launch_task, self._ipc_task):
            if task and not task.done():
                task.cancel()
        self._launch_task = self._ipc_task = None
        if self._writer:
            self._writer.close()
        self._reader = self._writer = None
        if self.process:
            self.process.terminate()
            asyncio.get_running_loop().run_in_executor(None, self._reap, self.process)
            self.process = None
        log.info("Closed mpv handle for %s", self.locator)

    @staticmethod
    def _reap(process: subprocess.Popen):
        try:
            process.wait(timeout=2)
        except subprocess.TimeoutExpired:
            process.kill()


class MpvEngine(MediaEngine):
    """Creates one mpv process per handle."""

    def __init__(self):
        self.binary = cfg("mpv", "binary", default="mpv")
        self.audio_output = cfg("mpv", "audio_output", default="pulse")
        self.socket_dir = cfg("mpv", "socket_dir", default="/tmp")
        self._serial = 0
        self._handles: set[MpvHandle] = set()

    def create_handle(self, locator: str) -> MpvHandle:
        self._serial += 1
        sock = os.path.join(self.socket_dir, f"campusradio-mpv-{os.getpid()}-{self._serial}.sock")
        handle = MpvHandle(locator, sock, binary=self.binary,
                           audio_output=self.audio_output)
        self._handles = {h for h in self._handles if not h.closed}
        self._handles.add(handle)
        handle.start()
        log.info("Created mpv handle for %s", locator)
        return handle

    async def shutdown(self):
        for handle in list(self._handles):
            if not handle.closed:
                handle.close()
        self._handles.clear()
