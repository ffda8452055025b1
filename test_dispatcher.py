import pytest

from conftest import make_track
from musicman.session import SessionState

G1, C1, USER = 1, 11, 7
G2 = 2


@pytest.mark.asyncio
async def test_parse(dispatcher):
    assert dispatcher.parse("!play  song A ") == ("play", "song A")
    assert dispatcher.parse("!NP") == ("np", "")
    assert dispatcher.parse("play song") is None
    assert dispatcher.parse("!") is None
    assert dispatcher.parse("! play") is None
    assert dispatcher.parse("") is None


@pytest.mark.asyncio
async def test_unknown_and_plain_messages_get_no_reply(dispatcher, gateway, say):
    assert await dispatcher.dispatch(say("!dance")) is None
    assert await dispatcher.dispatch(say("hello there")) is None
    assert gateway.sent == []


@pytest.mark.asyncio
async def test_play_without_query_is_argument_error(dispatcher, gateway, say):
    reply = await dispatcher.dispatch(say("!play"))
    assert reply == "Usage: !play <query>"
    assert gateway.sent == [(100, reply)]


@pytest.mark.asyncio
async def test_ping(dispatcher, gateway, say):
    assert await dispatcher.dispatch(say("!ping")) == "Ping took 42 ms"
    gateway.lat = float("nan")
    assert "latency" in await dispatcher.dispatch(say("!ping"))


@pytest.mark.asyncio
async def test_join_requires_voice_channel(dispatcher, registry, say):
    reply = await dispatcher.dispatch(say("!join", guild_id=G1, author_id=USER))
    assert "voice channel" in reply
    assert registry.get(G1) is None


@pytest.mark.asyncio
async def test_scenario_join_play_skip(dispatcher, gateway, audio, registry, say):
    gateway.voice[(G1, USER)] = C1
    audio.catalogue["song A"] = [make_track("song A")]

    assert await dispatcher.dispatch(say("!join", guild_id=G1, author_id=USER)) == f"Joined <#{C1}>"
    assert registry.get(G1).state is SessionState.IDLE

    reply = await dispatcher.dispatch(say("!play song A", guild_id=G1, author_id=USER))
    assert "Added to queue: song A" in reply
    session = registry.get(G1)
    assert session.state is SessionState.PLAYING
    assert session.now_playing.title == "song A"

    reply = await dispatcher.dispatch(say("!now_playing", guild_id=G1))
    assert reply == "Now playing: song A [3:00]"

    assert await dispatcher.dispatch(say("!skip", guild_id=G1)) == "Skipped: song A"
    assert registry.get(G1).state is SessionState.IDLE

    reply = await dispatcher.dispatch(say("!np", guild_id=G1))
    assert "nothing is playing" in reply.lower()
    assert len(gateway.sent) == 5


@pytest.mark.asyncio
async def test_scenario_play_without_join(dispatcher, gateway, audio, registry, say):
    audio.catalogue["song A"] = [make_track("song A")]
    reply = await dispatcher.dispatch(say("!play song A", guild_id=G2))
    assert "!join first" in reply
    assert registry.get(G2) is None


@pytest.mark.asyncio
async def test_skip_with_next_track_mentions_it(dispatcher, gateway, audio, say):
    gateway.voice[(G1, USER)] = C1
    audio.catalogue["A"] = [make_track("A")]
    audio.catalogue["B"] = [make_track("B", duration_ms=0)]
    for text in ("!join", "!play A", "!play B"):
        await dispatcher.dispatch(say(text, guild_id=G1, author_id=USER))
    assert await dispatcher.dispatch(say("!skip", guild_id=G1)) == "Skipped: A\nNow playing: B [LIVE]"


@pytest.mark.asyncio
async def test_nothing_to_skip(dispatcher, say):
    assert await dispatcher.dispatch(say("!skip")) == "Nothing to skip"


@pytest.mark.asyncio
async def test_not_found_reply(dispatcher, gateway, say):
    gateway.voice[(G1, USER)] = C1
    await dispatcher.dispatch(say("!join", guild_id=G1, author_id=USER))
    assert await dispatcher.dispatch(say("!play zzzz", guild_id=G1)) == "No results found for: zzzz"


@pytest.mark.asyncio
async def test_leave_replies(dispatcher, gateway, voice, say):
    assert "!join first" in await dispatcher.dispatch(say("!leave", guild_id=G1))
    gateway.voice[(G1, USER)] = C1
    await dispatcher.dispatch(say("!join", guild_id=G1, author_id=USER))
    voice.fail_detach = RuntimeError("socket closed")
    reply = await dispatcher.dispatch(say("!leave", guild_id=G1))
    assert reply.startswith("Left the voice channel (cleanup error: voice detach")


@pytest.mark.asyncio
async def test_external_failure_is_reported(dispatcher, gateway, audio, say):
    gateway.voice[(G1, USER)] = C1
    audio.fail_create = RuntimeError("node down")
    reply = await dispatcher.dispatch(say("!join", guild_id=G1, author_id=USER))
    assert "audio session create" in reply


@pytest.mark.asyncio
async def test_unexpected_handler_error_is_not_fatal(dispatcher, say):
    async def broken(ctx):
        raise KeyError("boom")
    dispatcher.register("broken", broken)
    reply = await dispatcher.dispatch(say("!broken"))
    assert reply == "Something went wrong while running that command"


@pytest.mark.asyncio
async def test_send_failure_is_swallowed(dispatcher, gateway, say):
    gateway.fail_send = ConnectionResetError("gone")
    assert await dispatcher.dispatch(say("!skip")) == "Nothing to skip"


def test_duplicate_registration_rejected(dispatcher):
    async def handler(ctx):
        return None
    with pytest.raises(ValueError):
        dispatcher.register("np", handler)


@pytest.mark.asyncio
async def test_help_lists_commands(dispatcher, say):
    reply = await dispatcher.dispatch(say("!help"))
    assert reply.splitlines()[0] == "Available commands:"
    assert "!now_playing/!np" in reply
    assert "`!play <query>`" in reply
