"""
Inbound playback events.

The Discord / wavelink listeners publish here and the coordinator's event
task consumes, so node notifications never run inside a command handler.
"""
import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from musicman.session import TrackDescriptor

logger = logging.getLogger("MusicMan.Events")

# Lavalink end reasons that mean the track ran out by itself
ADVANCING_END_REASONS = frozenset({"finished", "loadfailed"})


class PlaybackEventKind(enum.Enum):
    TRACK_END = "track_end"
    VOICE_CLOSED = "voice_closed"
    VOICE_MOVED = "voice_moved"


@dataclass(frozen=True)
class PlaybackEvent:
    kind: PlaybackEventKind
    guild_id: int
    reason: Optional[str] = None
    track: Optional[TrackDescriptor] = None
    # channel the bot left (VOICE_CLOSED) or was moved into (VOICE_MOVED)
    channel_id: Optional[int] = None

    @property
    def advances_queue(self) -> bool:
        return (
            self.kind is PlaybackEventKind.TRACK_END
            and (self.reason or "").lower() in ADVANCING_END_REASONS
        )


class EventChannel:
    """Unbounded unless ``maxsize`` is given; a full channel drops the event."""

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: "asyncio.Queue[PlaybackEvent]" = asyncio.Queue(maxsize)

    def publish(self, event: PlaybackEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Event channel full; dropped %s for guild=%s", event.kind.value, event.guild_id)
            return False
        return True

    async def get(self) -> PlaybackEvent:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()


def voice_state_event(guild_id: int, before_channel_id: Optional[int], after_channel_id: Optional[int]) -> Optional[PlaybackEvent]:
    """Map a change of the bot's own voice state to an event, if it needs one.

    Joining a channel is driven by the coordinator itself and mute / deafen
    toggles keep the channel, so neither produces an event.
    """
    if before_channel_id is None or before_channel_id == after_channel_id:
        return None
    if after_channel_id is None:
        return PlaybackEvent(PlaybackEventKind.VOICE_CLOSED, guild_id, channel_id=before_channel_id)
    return PlaybackEvent(PlaybackEventKind.VOICE_MOVED, guild_id, channel_id=after_channel_id)
