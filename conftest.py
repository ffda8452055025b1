import asyncio

import pytest

from musicman.commands import register_commands
from musicman.coordinator import PlaybackCoordinator
from musicman.dispatcher import CommandDispatcher, InboundMessage
from musicman.events import EventChannel
from musicman.session import SessionRegistry, TrackDescriptor


def make_track(title, duration_ms=180_000):
    return TrackDescriptor(title=title, source=f"https://example.invalid/{title.replace(' ', '_')}", duration_ms=duration_ms)


class FakeVoice:
    def __init__(self):
        self.attached = {}
        self.attach_calls = 0
        self.detach_calls = []
        self.attach_delay = 0.0
        self.fail_attach = None
        self.fail_detach = None

    async def attach(self, guild_id, channel_id):
        self.attach_calls += 1
        if self.attach_delay:
            await asyncio.sleep(self.attach_delay)
        if self.fail_attach:
            raise self.fail_attach
        self.attached[guild_id] = channel_id
        return ("voice-handle", guild_id, channel_id)

    async def detach(self, guild_id):
        self.detach_calls.append(guild_id)
        self.attached.pop(guild_id, None)
        if self.fail_detach:
            raise self.fail_detach

    def is_attached(self, guild_id):
        return guild_id in self.attached


class FakeAudio:
    def __init__(self):
        self.catalogue = {}
        self.sessions = {}
        self.playing = {}
        self.played = []
        self.create_calls = 0
        self.destroy_calls = []
        self.skip_calls = []
        self.fail_create = None
        self.fail_destroy = None
        self.fail_play = None
        self.fail_search = None
        self.create_hang = 0.0

    async def search(self, query):
        if self.fail_search:
            raise self.fail_search
        return list(self.catalogue.get(query, []))

    async def play(self, guild_id, track):
        if self.fail_play:
            raise self.fail_play
        self.playing[guild_id] = track
        self.played.append((guild_id, track))

    async def skip(self, guild_id):
        self.skip_calls.append(guild_id)
        return self.playing.pop(guild_id, None)

    async def create_session(self, guild_id, voice_handle):
        self.create_calls += 1
        if self.create_hang:
            await asyncio.sleep(self.create_hang)
        if self.fail_create:
            raise self.fail_create
        self.sessions[guild_id] = voice_handle

    async def destroy_session(self, guild_id):
        self.destroy_calls.append(guild_id)
        self.sessions.pop(guild_id, None)
        self.playing.pop(guild_id, None)
        if self.fail_destroy:
            raise self.fail_destroy

    def currently_playing(self, guild_id):
        return self.playing.get(guild_id)


class FakeGateway:
    def __init__(self):
        self.sent = []
        self.voice = {}
        self.lat = 0.042
        self.fail_send = None

    async def send(self, channel_id, text):
        if self.fail_send:
            raise self.fail_send
        self.sent.append((channel_id, text))

    def voice_channel_of(self, guild_id, user_id):
        return self.voice.get((guild_id, user_id))

    def latency(self):
        return self.lat


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def voice():
    return FakeVoice()


@pytest.fixture
def audio():
    return FakeAudio()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def coordinator(registry, voice, audio):
    return PlaybackCoordinator(registry, voice, audio, EventChannel(), timeout=0.5, max_queue_size=3)


@pytest.fixture
def dispatcher(coordinator, gateway):
    d = CommandDispatcher("!", coordinator, gateway)
    register_commands(d)
    return d


@pytest.fixture
def say():
    def _say(content, guild_id=1, channel_id=100, author_id=7):
        return InboundMessage(guild_id=guild_id, channel_id=channel_id, author_id=author_id, content=content)
    return _say
