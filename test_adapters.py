import asyncio
import math
from types import SimpleNamespace

import discord
import pytest
import wavelink

from musicman.audio_node import WavelinkAudioNode, to_descriptor
from musicman import voice_manager
from musicman.gateway import DiscordChatGateway
from musicman.voice_manager import DiscordVoiceSessions, connect_timeout_within, max_backoff_total


class FakePlayable:
    searches = []
    results = []

    def __init__(self, title, length=200_000, is_stream=False):
        self.title = title
        self.uri = f"https://example.invalid/{title}"
        self.identifier = title
        self.length = length
        self.is_stream = is_stream
        self.author = "someone"

    @classmethod
    async def search(cls, query, *, source=None):
        cls.searches.append((query, source))
        return list(cls.results)


class FakePlayer:
    def __init__(self):
        self.autoplay = None
        self.queue = SimpleNamespace(clear=lambda: None)
        self.current = None
        self.played = []
        self.stopped = False
        self.disconnected = False
        self.connected = True

    @property
    def playing(self):
        return self.current is not None

    async def play(self, playable):
        self.current = playable
        self.played.append(playable)

    async def skip(self, *, force=True):
        old, self.current = self.current, None
        return old

    async def stop(self, *, force=True):
        self.stopped = True
        self.current = None

    async def disconnect(self, *, force=False):
        self.disconnected = True
        self.connected = False


@pytest.fixture
def fake_wavelink(monkeypatch):
    FakePlayable.searches = []
    FakePlayable.results = []
    monkeypatch.setattr(wavelink, "Playable", FakePlayable)
    monkeypatch.setattr(wavelink, "Player", FakePlayer)
    return FakePlayable


def test_to_descriptor_marks_streams(fake_wavelink):
    assert to_descriptor(FakePlayable("live", is_stream=True)).duration_ms == 0
    d = to_descriptor(FakePlayable("song"))
    assert (d.title, d.source, d.duration_ms) == ("song", "https://example.invalid/song", 200_000)


@pytest.mark.asyncio
async def test_search_uses_prefix_only_for_text(fake_wavelink):
    node = WavelinkAudioNode(default_search="scsearch")
    fake_wavelink.results = [FakePlayable("a"), FakePlayable("b")]
    found = await node.search("some words")
    assert [t.title for t in found] == ["a", "b"]
    await node.search("https://soundcloud.com/x/y")
    assert fake_wavelink.searches == [("some words", "scsearch"), ("https://soundcloud.com/x/y", None)]


@pytest.mark.asyncio
async def test_session_lifecycle(fake_wavelink):
    node = WavelinkAudioNode()
    player = FakePlayer()
    with pytest.raises(TypeError):
        await node.create_session(1, object())
    await node.create_session(1, player)
    assert player.autoplay is wavelink.AutoPlayMode.disabled

    track = to_descriptor(FakePlayable("a"))
    await node.play(1, track)
    assert node.currently_playing(1) == track
    skipped = await node.skip(1)
    assert skipped == track
    assert node.currently_playing(1) is None

    await node.play(1, track)
    await node.destroy_session(1)
    assert player.stopped
    with pytest.raises(LookupError):
        await node.play(1, track)


def _voice_client(guild=None, channel=None):
    return SimpleNamespace(get_guild=lambda gid: guild, get_channel=lambda cid: channel, latency=0.1)


def test_gateway_voice_lookup_and_latency():
    vc = SimpleNamespace(id=55, voice_states={7: object()})
    guild = SimpleNamespace(voice_channels=[vc], stage_channels=[])
    gw = DiscordChatGateway(_voice_client(guild=guild))
    assert gw.voice_channel_of(1, 7) == 55
    assert gw.voice_channel_of(1, 8) is None
    assert gw.latency() == 0.1
    assert DiscordChatGateway(SimpleNamespace(latency=math.inf)).latency() is None
    assert DiscordChatGateway(_voice_client(guild=None)).voice_channel_of(1, 7) is None


@pytest.mark.asyncio
async def test_gateway_send_truncates():
    sent = []

    class Channel:
        async def send(self, text):
            sent.append(text)

    gw = DiscordChatGateway(_voice_client(channel=Channel()))
    await gw.send(100, "x" * 2500)
    assert len(sent[0]) == 2000


@pytest.mark.asyncio
async def test_voice_attach_and_detach(monkeypatch, fake_wavelink):
    player = FakePlayer()

    class FakeVoiceChannel:
        name = "General"

        async def connect(self, *, cls, self_deaf, timeout):
            assert cls is FakePlayer and self_deaf
            return player

    monkeypatch.setattr(discord, "VoiceChannel", FakeVoiceChannel)
    channel = FakeVoiceChannel()
    guild = SimpleNamespace(get_channel=lambda cid: channel if cid == 11 else None, voice_client=None)
    sessions = DiscordVoiceSessions(_voice_client(guild=guild))

    assert await sessions.attach(1, 11) is player
    assert sessions.handle_for(1) is player
    assert sessions.is_attached(1)
    with pytest.raises(LookupError):
        await sessions.attach(1, 12)

    await sessions.detach(1)
    assert player.disconnected
    assert sessions.handle_for(1) is None
    assert not sessions.is_attached(1)
    await sessions.detach(1)  # nothing left to close


@pytest.mark.parametrize("budget", [5.0, 15.0, 60.0])
def test_connect_retries_fit_in_attach_budget(budget):
    per_attempt = connect_timeout_within(budget)
    assert per_attempt > 0
    assert per_attempt * voice_manager._VOICE_CONNECT_MAX_RETRIES + max_backoff_total() < budget


@pytest.mark.asyncio
async def test_retried_attach_finishes_before_caller_timeout(monkeypatch, fake_wavelink):
    budget = 2.0
    player = FakePlayer()
    timeouts = []

    class FlakyVoiceChannel:
        name = "General"

        async def connect(self, *, cls, self_deaf, timeout):
            timeouts.append(timeout)
            if len(timeouts) == 1:
                await asyncio.sleep(timeout)
                raise asyncio.TimeoutError()
            return player

    monkeypatch.setattr(discord, "VoiceChannel", FlakyVoiceChannel)
    channel = FlakyVoiceChannel()
    guild = SimpleNamespace(get_channel=lambda cid: channel, voice_client=None)
    sessions = DiscordVoiceSessions(_voice_client(guild=guild), connect_timeout=connect_timeout_within(budget))

    assert await asyncio.wait_for(sessions.attach(1, 11), timeout=budget) is player
    assert len(timeouts) == 2
