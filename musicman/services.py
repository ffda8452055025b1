"""
Contracts for the collaborators the coordinator drives.

The core never talks to discord.py or wavelink directly; ``bot.py`` wires
in the adapters from ``gateway``, ``voice_manager`` and ``audio_node``, and
the tests wire in fakes.
"""
from typing import Any, List, Optional, Protocol

from musicman.session import TrackDescriptor


class ChatGateway(Protocol):
    async def send(self, channel_id: int, text: str) -> None: ...

    def voice_channel_of(self, guild_id: int, user_id: int) -> Optional[int]: ...

    def latency(self) -> Optional[float]: ...


class VoiceSessionService(Protocol):
    async def attach(self, guild_id: int, channel_id: int) -> Any: ...

    async def detach(self, guild_id: int) -> None: ...

    def is_attached(self, guild_id: int) -> bool: ...


class AudioNodeService(Protocol):
    async def search(self, query: str) -> List[TrackDescriptor]: ...

    async def play(self, guild_id: int, track: TrackDescriptor) -> None: ...

    async def skip(self, guild_id: int) -> Optional[TrackDescriptor]: ...

    async def create_session(self, guild_id: int, voice_handle: Any) -> None: ...

    async def destroy_session(self, guild_id: int) -> None: ...

    def currently_playing(self, guild_id: int) -> Optional[TrackDescriptor]: ...
