"""MusicMan - prefix-command Discord music bot backed by a Lavalink node."""

__version__ = "0.2.0"
