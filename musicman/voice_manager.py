"""
Voice connection management.

``DiscordVoiceSessions`` opens and closes the bot's voice connection through
discord.py. The connection object is a ``wavelink.Player``, which is what
the audio node later drives, so ``attach`` hands it back as the session
handle.
"""
import asyncio
import logging
import random
from typing import Dict, Optional

import discord
import wavelink

logger = logging.getLogger("MusicMan.VoiceManager")

_VOICE_CONNECT_MAX_RETRIES = 2
_VOICE_CONNECT_BASE_BACKOFF = 0.5
_VOICE_CONNECT_JITTER = 0.5
# share of the attach budget given to connect attempts; the rest covers the stale-client disconnect
_VOICE_CONNECT_BUDGET_SHARE = 0.9


def max_backoff_total() -> float:
    """Longest total sleep between connect attempts."""
    return sum(
        _VOICE_CONNECT_BASE_BACKOFF * (2 ** (attempt - 1)) + _VOICE_CONNECT_JITTER
        for attempt in range(1, _VOICE_CONNECT_MAX_RETRIES)
    )


def connect_timeout_within(budget: float) -> float:
    """Per-attempt connect timeout so that all attempts and backoffs fit in ``budget`` seconds."""
    per_attempt = (budget * _VOICE_CONNECT_BUDGET_SHARE - max_backoff_total()) / _VOICE_CONNECT_MAX_RETRIES
    return max(per_attempt, 0.1)


class DiscordVoiceSessions:
    def __init__(self, client: discord.Client, *, connect_timeout: Optional[float] = None, self_deaf: bool = True) -> None:
        self._client = client
        self._connect_timeout = connect_timeout if connect_timeout is not None else connect_timeout_within(15.0)
        self._self_deaf = self_deaf
        self._handles: Dict[int, wavelink.Player] = {}

    def handle_for(self, guild_id: int) -> Optional[wavelink.Player]:
        return self._handles.get(guild_id)

    def is_attached(self, guild_id: int) -> bool:
        player = self._handles.get(guild_id)
        return player is not None and bool(player.connected)

    async def attach(self, guild_id: int, channel_id: int) -> wavelink.Player:
        guild = self._client.get_guild(guild_id)
        if guild is None:
            raise LookupError(f"guild {guild_id} is not available")
        channel = guild.get_channel(channel_id)
        if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            raise LookupError(f"channel {channel_id} is not a voice channel")

        stale = guild.voice_client
        if stale is not None:
            # left over from a session the registry no longer knows about
            logger.info("Dropping stale voice client guild=%s", guild_id)
            await stale.disconnect(force=True)

        last_exc: Optional[BaseException] = None
        for attempt in range(1, _VOICE_CONNECT_MAX_RETRIES + 1):
            try:
                player = await channel.connect(
                    cls=wavelink.Player,
                    self_deaf=self._self_deaf,
                    timeout=self._connect_timeout,
                )
            except (discord.ClientException, wavelink.WavelinkException, asyncio.TimeoutError) as e:
                last_exc = e
                logger.warning("Voice connect attempt %d failed guild=%s: %s", attempt, guild_id, e)
                if attempt >= _VOICE_CONNECT_MAX_RETRIES:
                    break
                backoff = _VOICE_CONNECT_BASE_BACKOFF * (2 ** (attempt - 1))
                backoff += random.uniform(0, _VOICE_CONNECT_JITTER)
                await asyncio.sleep(backoff)
                continue
            self._handles[guild_id] = player
            logger.info("Connected to voice channel: %s (guild: %s)", channel.name, guild_id)
            return player
        raise ConnectionError(f"could not connect to voice channel {channel_id}") from last_exc

    async def detach(self, guild_id: int) -> None:
        vc = self._handles.pop(guild_id, None)
        if vc is None:
            guild = self._client.get_guild(guild_id)
            vc = guild.voice_client if guild is not None else None
        if vc is None:
            return
        await vc.disconnect(force=True)
        logger.info("Disconnected voice guild=%s", guild_id)
