"""
Lavalink audio node access through wavelink.

The coordinator owns the queue, so every player is switched to
``AutoPlayMode.disabled`` and only plays what it is told to.
"""
import logging
from typing import Any, Dict, List, Optional

import wavelink

from musicman.session import TrackDescriptor
from musicman.utils import looks_like_url

logger = logging.getLogger("MusicMan.AudioNode")


def to_descriptor(playable: wavelink.Playable) -> TrackDescriptor:
    return TrackDescriptor(
        title=playable.title,
        source=playable.uri or playable.identifier,
        duration_ms=0 if playable.is_stream else playable.length,
        author=playable.author,
        handle=playable,
    )


class WavelinkAudioNode:
    def __init__(self, default_search: str = "ytsearch") -> None:
        self._default_search = default_search
        self._players: Dict[int, wavelink.Player] = {}

    def _player(self, guild_id: int) -> wavelink.Player:
        player = self._players.get(guild_id)
        if player is None:
            raise LookupError(f"no audio session for guild {guild_id}")
        return player

    async def search(self, query: str) -> List[TrackDescriptor]:
        source = None if looks_like_url(query) else self._default_search
        results = await wavelink.Playable.search(query, source=source)
        if isinstance(results, wavelink.Playlist):
            tracks = list(results.tracks)
        else:
            tracks = list(results or [])
        logger.debug("Search %r -> %d result(s)", query, len(tracks))
        return [to_descriptor(t) for t in tracks]

    async def create_session(self, guild_id: int, voice_handle: Any) -> None:
        if not isinstance(voice_handle, wavelink.Player):
            raise TypeError(f"expected wavelink.Player, got {type(voice_handle).__name__}")
        voice_handle.autoplay = wavelink.AutoPlayMode.disabled
        voice_handle.queue.clear()
        self._players[guild_id] = voice_handle

    async def destroy_session(self, guild_id: int) -> None:
        player = self._players.pop(guild_id, None)
        if player is None:
            return
        player.queue.clear()
        if player.playing:
            await player.stop(force=True)

    async def play(self, guild_id: int, track: TrackDescriptor) -> None:
        player = self._player(guild_id)
        playable = track.handle
        if not isinstance(playable, wavelink.Playable):
            found = await self.search(track.source)
            if not found:
                raise LookupError(f"track source {track.source!r} no longer resolves")
            playable = found[0].handle
        await player.play(playable)

    async def skip(self, guild_id: int) -> Optional[TrackDescriptor]:
        old = await self._player(guild_id).skip(force=True)
        return to_descriptor(old) if old is not None else None

    def currently_playing(self, guild_id: int) -> Optional[TrackDescriptor]:
        player = self._players.get(guild_id)
        if player is None or player.current is None:
            return None
        return to_descriptor(player.current)
