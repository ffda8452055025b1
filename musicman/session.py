"""
Per-guild session state.

A ``GuildSession`` records which voice channel the bot occupies in a guild,
the track the audio node is playing there and the tracks waiting behind it.
The ``SessionRegistry`` owns every session plus one ``asyncio.Lock`` per
guild; the coordinator holds that lock for the whole of a state transition.
"""
import asyncio
import enum
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger("MusicMan.Session")


@dataclass(frozen=True)
class TrackDescriptor:
    title: str
    source: str
    duration_ms: Optional[int] = None
    author: Optional[str] = None
    # the audio node's own playable object; opaque to the core
    handle: Any = field(default=None, compare=False, repr=False)


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    IDLE = "idle"
    PLAYING = "playing"

    @property
    def connected(self) -> bool:
        return self in (SessionState.IDLE, SessionState.PLAYING)


@dataclass
class GuildSession:
    guild_id: int
    voice_channel_id: Optional[int] = None
    now_playing: Optional[TrackDescriptor] = None
    queued: Deque[TrackDescriptor] = field(default_factory=deque)
    state: SessionState = SessionState.DISCONNECTED

    @property
    def connected(self) -> bool:
        return self.state.connected

    def mark_connected(self, channel_id: int) -> None:
        self.voice_channel_id = channel_id
        self.now_playing = None
        self.queued.clear()
        self.state = SessionState.IDLE

    def start_track(self, track: TrackDescriptor) -> None:
        """Record a track the audio node acknowledged."""
        if self.voice_channel_id is None:
            raise RuntimeError(f"guild {self.guild_id} has no voice session")
        self.now_playing = track
        self.state = SessionState.PLAYING

    def advance(self) -> Optional[TrackDescriptor]:
        """Drop the current track and pop the next queued one, if any.

        The session is left idle; the caller records the popped track with
        ``start_track`` once the audio node accepts it.
        """
        self.now_playing = None
        if self.voice_channel_id is not None:
            self.state = SessionState.IDLE
        if self.queued:
            return self.queued.popleft()
        return None

    def reset(self) -> None:
        self.voice_channel_id = None
        self.now_playing = None
        self.queued.clear()
        self.state = SessionState.DISCONNECTED


class SessionRegistry:
    """Process-wide map of guild id -> ``GuildSession``.

    Sessions are created lazily and never removed; ``clear`` only resets
    them. Locks live in their own map so waiting on a guild never creates
    a session for it.
    """

    def __init__(self) -> None:
        self._sessions: Dict[int, GuildSession] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    def get(self, guild_id: int) -> Optional[GuildSession]:
        return self._sessions.get(guild_id)

    def get_or_create(self, guild_id: int) -> GuildSession:
        session = self._sessions.get(guild_id)
        if session is None:
            session = GuildSession(guild_id=guild_id)
            self._sessions[guild_id] = session
            logger.debug("Created session guild=%s", guild_id)
        return session

    def clear(self, guild_id: int) -> None:
        session = self._sessions.get(guild_id)
        if session is not None:
            session.reset()

    def lock(self, guild_id: int) -> asyncio.Lock:
        lk = self._locks.get(guild_id)
        if lk is None:
            lk = asyncio.Lock()
            self._locks[guild_id] = lk
        return lk

    def snapshot(self) -> List[GuildSession]:
        return list(self._sessions.values())

    def __contains__(self, guild_id: object) -> bool:
        return guild_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
