"""
Players — media engines the coordinator can drive.

A player turns a stream URL into something audible and reports position,
duration and transport state back.  The coordinator never talks to mpv
directly; it only sees the MediaEngine / MediaHandle contract from
lib/engine_base.py.

Current players:
  mpv.py  — one mpv process per handle, controlled over JSON IPC
"""
