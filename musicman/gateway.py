"""discord.py-backed chat gateway used by the dispatcher."""
import logging
import math
from typing import Optional

import discord

from musicman.utils import truncate

logger = logging.getLogger("MusicMan.Gateway")

DISCORD_MESSAGE_LIMIT = 2000


class DiscordChatGateway:
    def __init__(self, client: discord.Client) -> None:
        self._client = client

    async def send(self, channel_id: int, text: str) -> None:
        channel = self._client.get_channel(channel_id)
        if channel is None:
            channel = await self._client.fetch_channel(channel_id)
        await channel.send(truncate(text, DISCORD_MESSAGE_LIMIT))

    def voice_channel_of(self, guild_id: int, user_id: int) -> Optional[int]:
        guild = self._client.get_guild(guild_id)
        if guild is None:
            return None
        # voice_states is filled from the voice_states intent, no member cache needed
        for channel in list(guild.voice_channels) + list(guild.stage_channels):
            if user_id in channel.voice_states:
                return channel.id
        return None

    def latency(self) -> Optional[float]:
        lat = self._client.latency
        if lat is None or math.isnan(lat) or math.isinf(lat):
            return None
        return lat
