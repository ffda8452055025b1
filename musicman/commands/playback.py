"""Playback command handlers.

Handlers only translate between chat and the coordinator: they read the
invoking user's voice state from the gateway, call one coordinator
operation and format the reply. Errors propagate to the dispatcher.
"""
from musicman.messages import msg
from musicman.utils import format_duration


async def handle_join(ctx) -> str:
    channel_id = ctx.gateway.voice_channel_of(ctx.guild_id, ctx.message.author_id)
    joined = await ctx.coordinator.join(ctx.guild_id, channel_id)
    return msg("JOINED", channel=joined)


async def handle_leave(ctx) -> str:
    problems = await ctx.coordinator.leave(ctx.guild_id)
    if problems:
        return msg("LEFT_WITH_ERRORS", detail="; ".join(problems))
    return msg("LEFT")


async def handle_play(ctx) -> str:
    track, _started = await ctx.coordinator.play(ctx.guild_id, ctx.args)
    return msg("ADDED", title=track.title)


async def handle_skip(ctx) -> str:
    result = await ctx.coordinator.skip(ctx.guild_id)
    if result is None:
        return msg("NOTHING_TO_SKIP")
    skipped, nxt = result
    reply = msg("SKIPPED", title=skipped.title)
    if nxt is not None:
        reply += "\n" + msg("NOW_PLAYING", title=nxt.title, duration=format_duration(nxt.duration_ms))
    return reply


async def handle_now_playing(ctx) -> str:
    track = ctx.coordinator.now_playing(ctx.guild_id)
    if track is None:
        return msg("NOTHING_PLAYING")
    return msg("NOW_PLAYING", title=track.title, duration=format_duration(track.duration_ms))
