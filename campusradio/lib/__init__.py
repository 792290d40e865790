"""Shared plumbing: configuration and the media engine contract."""
