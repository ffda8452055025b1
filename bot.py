#!/usr/bin/env python3

from __future__ import annotations

import json
import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from typing import Any, Dict

import discord
import wavelink

from musicman.audio_node import WavelinkAudioNode, to_descriptor
from musicman.commands import register_commands
from musicman.config import get_lavalink_settings, get_token, load_config, load_env_file
from musicman.coordinator import PlaybackCoordinator
from musicman.dispatcher import CommandDispatcher, InboundMessage
from musicman.events import EventChannel, PlaybackEvent, PlaybackEventKind, voice_state_event
from musicman.exceptions import ConfigurationError
from musicman.gateway import DiscordChatGateway
from musicman.messages import set_language
from musicman.metrics import metrics_snapshot
from musicman.session import SessionRegistry
from musicman.voice_manager import DiscordVoiceSessions, connect_timeout_within

VERSION: str = "v0.2.0"

logger = logging.getLogger("MusicMan")


class _JsonFmt(logging.Formatter):
    def format(self, record):
        base = {
            "ts": time.strftime('%Y-%m-%dT%H:%M:%S', time.gmtime(record.created)),
            "lvl": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


def setup_logging(config: Dict[str, Any]) -> None:
    if logger.handlers:
        return
    structured = bool(config.get("structured_logging"))
    trace_on = bool(config.get("trace_logging"))
    if structured:
        fmt_console = _JsonFmt()
    else:
        fmt_console = logging.Formatter("%(asctime)s:%(levelname)s:%(name)s: %(message)s")
    logger.setLevel(logging.DEBUG if trace_on else logging.INFO)
    ch = logging.StreamHandler(); ch.setFormatter(fmt_console); logger.addHandler(ch)
    log_file = config.get("log_file")
    if log_file and not structured:
        fh = RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
        fh.setFormatter(fmt_console); logger.addHandler(fh)
    # library loggers share the console handler; bot.run is called with log_handler=None
    for name in ("discord", "wavelink"):
        lib = logging.getLogger(name)
        lib.setLevel(logging.INFO)
        lib.addHandler(ch)
    logger.info("Logger initialized (structured=%s trace=%s)", structured, trace_on)


class MusicManBot(discord.Client):
    """Discord client wiring the chat gateway, voice and audio node into the dispatcher."""

    def __init__(self, config: Dict[str, Any], *, lavalink_uri: str, lavalink_password: str) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.voice_states = True
        super().__init__(intents=intents)
        self.config = config
        self.lavalink_uri = lavalink_uri
        self.lavalink_password = lavalink_password

        self.registry = SessionRegistry()
        self.events = EventChannel()
        self.gateway = DiscordChatGateway(self)
        timeout = float(config["external_call_timeout_seconds"])
        # every connect retry has to finish inside the coordinator's attach timeout
        self.voice_sessions = DiscordVoiceSessions(self, connect_timeout=connect_timeout_within(timeout))
        self.audio_node = WavelinkAudioNode(default_search=config["default_search"])
        self.coordinator = PlaybackCoordinator(
            self.registry,
            self.voice_sessions,
            self.audio_node,
            self.events,
            timeout=timeout,
            max_queue_size=int(config["max_queue_size"]),
        )
        self.dispatcher = CommandDispatcher(config["prefix"], self.coordinator, self.gateway)
        register_commands(self.dispatcher)

    async def setup_hook(self) -> None:
        node = wavelink.Node(uri=self.lavalink_uri, password=self.lavalink_password)
        try:
            await wavelink.Pool.connect(nodes=[node], client=self, cache_capacity=100)
        except Exception:
            # playback commands report the failure per request; the bot keeps running
            logger.exception("Could not connect to Lavalink node at %s", self.lavalink_uri)
        self.coordinator.start_event_loop()

    async def on_ready(self):
        logger.info("%s is connected! (ID: %s, %s)", self.user.name, self.user.id, VERSION)

    async def on_wavelink_node_ready(self, payload: wavelink.NodeReadyEventPayload):
        logger.info("Lavalink node %s ready (resumed=%s)", payload.node.identifier, payload.resumed)

    async def on_wavelink_track_end(self, payload: wavelink.TrackEndEventPayload):
        player = payload.player
        if player is None or player.guild is None:
            return
        self.events.publish(PlaybackEvent(
            PlaybackEventKind.TRACK_END,
            player.guild.id,
            reason=str(payload.reason),
            track=to_descriptor(payload.track),
        ))

    async def on_voice_state_update(self, member: discord.Member, before, after):
        if self.user is None or member.id != self.user.id:
            return
        event = voice_state_event(
            member.guild.id,
            before.channel.id if before.channel else None,
            after.channel.id if after.channel else None,
        )
        if event is not None:
            self.events.publish(event)

    async def on_message(self, message: discord.Message):
        if message.author.bot or message.guild is None:
            return
        await self.dispatcher.dispatch(InboundMessage(
            guild_id=message.guild.id,
            channel_id=message.channel.id,
            author_id=message.author.id,
            content=message.content,
        ))

    async def close(self) -> None:
        await self.coordinator.stop_event_loop()
        logger.info("Metrics at shutdown: %s", metrics_snapshot())
        await super().close()


def main() -> int:
    try:
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8")
    except (OSError, ValueError):
        pass

    load_env_file()
    config = load_config()
    setup_logging(config)
    set_language(config["language"])

    try:
        token = get_token()
    except ConfigurationError as e:
        logger.critical("%s", e)
        return 1
    uri, password = get_lavalink_settings()

    bot = MusicManBot(config, lavalink_uri=uri, lavalink_password=password)
    try:
        bot.run(token, log_handler=None)
    except discord.LoginFailure:
        logger.critical("Discord rejected the token in DISCORD_TOKEN")
        return 1
    except (discord.GatewayNotFound, OSError) as e:
        logger.critical("Could not reach the Discord gateway: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
