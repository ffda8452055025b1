"""
Playback coordination.

``PlaybackCoordinator`` sequences join / leave / play / skip against the
session registry and the two external services. Every mutating operation
holds the guild's registry lock for its whole transition, so two commands
for one guild never interleave while commands for different guilds never
wait on each other.

Per guild:

    DISCONNECTED -> CONNECTING -> IDLE <-> PLAYING -> ... -> DISCONNECTED

Collaborator calls are bounded by ``timeout``; failures and timeouts come
back as ``ExternalServiceError`` and a half-finished join is rolled back to
DISCONNECTED.
"""
import asyncio
import logging
from typing import Any, Awaitable, List, Optional, Tuple

from musicman.events import EventChannel, PlaybackEvent, PlaybackEventKind
from musicman.exceptions import (
    AlreadyConnectedError,
    ArgumentError,
    ExternalServiceError,
    NoVoiceChannelError,
    NotConnectedError,
    NotFoundError,
    QueueFullError,
)
from musicman.metrics import metric_inc
from musicman.services import AudioNodeService, VoiceSessionService
from musicman.session import GuildSession, SessionRegistry, SessionState, TrackDescriptor
from musicman.utils import truncate

logger = logging.getLogger("MusicMan.Coordinator")


class PlaybackCoordinator:
    def __init__(
        self,
        registry: SessionRegistry,
        voice: VoiceSessionService,
        audio: AudioNodeService,
        events: Optional[EventChannel] = None,
        *,
        timeout: float = 15.0,
        max_queue_size: int = 200,
    ) -> None:
        self.registry = registry
        self._voice = voice
        self._audio = audio
        self.events = events if events is not None else EventChannel()
        self._timeout = timeout
        self._max_queue_size = max_queue_size
        self._event_task: Optional[asyncio.Task] = None

    async def _call(self, operation: str, guild_id: Optional[int], aw: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(aw, timeout=self._timeout)
        except asyncio.TimeoutError:
            metric_inc("external_timeouts")
            logger.warning("%s timed out after %.1fs (guild=%s)", operation, self._timeout, guild_id)
            raise ExternalServiceError(operation, f"{operation} timed out") from None
        except ExternalServiceError:
            raise
        except Exception as e:
            metric_inc("external_failures")
            logger.warning("%s failed (guild=%s): %s", operation, guild_id, e)
            raise ExternalServiceError(operation, str(e)) from e

    async def _best_effort(self, operation: str, guild_id: int, aw: Awaitable[Any]) -> Optional[str]:
        """Run a teardown step; return the error text instead of raising."""
        try:
            await self._call(operation, guild_id, aw)
        except ExternalServiceError as e:
            return f"{operation}: {e.detail}"
        return None

    def _connected_session(self, guild_id: int) -> GuildSession:
        session = self.registry.get(guild_id)
        if session is None or not session.connected:
            raise NotConnectedError()
        return session

    # ---- commands -------------------------------------------------------

    async def join(self, guild_id: int, channel_id: Optional[int]) -> int:
        """Attach to ``channel_id`` and open an audio-node session for the guild.

        ``channel_id`` is the invoking user's current voice channel, ``None``
        when they are not in one.
        """
        if channel_id is None:
            raise NoVoiceChannelError()
        async with self.registry.lock(guild_id):
            existing = self.registry.get(guild_id)
            if existing is not None and existing.state is not SessionState.DISCONNECTED:
                raise AlreadyConnectedError()
            session = self.registry.get_or_create(guild_id)
            session.state = SessionState.CONNECTING
            try:
                handle = await self._call("voice attach", guild_id, self._voice.attach(guild_id, channel_id))
                await self._call("audio session create", guild_id, self._audio.create_session(guild_id, handle))
            except BaseException as e:
                # cancellation lands here too; the voice connection is closed either way
                try:
                    if isinstance(e, ExternalServiceError):
                        metric_inc("join_rollback")
                        logger.warning("Join rolled back guild=%s channel=%s (%s)", guild_id, channel_id, e.operation)
                    else:
                        logger.warning("Join interrupted guild=%s channel=%s (%s)", guild_id, channel_id, type(e).__name__)
                    problem = await self._best_effort("voice detach", guild_id, self._voice.detach(guild_id))
                    if problem:
                        logger.warning("Rollback left voice state behind guild=%s: %s", guild_id, problem)
                finally:
                    session.reset()
                raise
            session.mark_connected(channel_id)
        metric_inc("join_success")
        logger.info("Joined voice guild=%s channel=%s", guild_id, channel_id)
        return channel_id

    async def leave(self, guild_id: int) -> List[str]:
        """Tear down the audio-node and voice sessions.

        Always ends DISCONNECTED; teardown problems are returned, not raised.
        """
        async with self.registry.lock(guild_id):
            session = self._connected_session(guild_id)
            problems = []
            problem = await self._best_effort("audio session destroy", guild_id, self._audio.destroy_session(guild_id))
            if problem:
                problems.append(problem)
            problem = await self._best_effort("voice detach", guild_id, self._voice.detach(guild_id))
            if problem:
                problems.append(problem)
            session.reset()
        metric_inc("leave")
        logger.info("Left voice guild=%s (problems=%d)", guild_id, len(problems))
        return problems

    async def play(self, guild_id: int, query: str) -> Tuple[TrackDescriptor, bool]:
        """Search ``query`` and play or enqueue the top result.

        Returns the track and whether it started immediately.
        """
        query = (query or "").strip()
        if not query:
            raise ArgumentError("play <query>")
        async with self.registry.lock(guild_id):
            session = self._connected_session(guild_id)
            if session.state is SessionState.PLAYING and len(session.queued) >= self._max_queue_size:
                raise QueueFullError(str(self._max_queue_size))
            results = await self._call("search", guild_id, self._audio.search(query))
            if not results:
                metric_inc("play_not_found")
                raise NotFoundError(query)
            track = results[0]
            if session.state is SessionState.IDLE:
                await self._call("play", guild_id, self._audio.play(guild_id, track))
                session.start_track(track)
                metric_inc("play_started")
                logger.info("Start playback guild=%s title=%s", guild_id, truncate(track.title, 80))
                return track, True
            session.queued.append(track)
            metric_inc("play_enqueued")
            logger.info("Enqueued guild=%s title=%s position=%d", guild_id, truncate(track.title, 80), len(session.queued))
            return track, False

    async def skip(self, guild_id: int) -> Optional[Tuple[TrackDescriptor, Optional[TrackDescriptor]]]:
        """Skip the current track.

        Returns ``(skipped, next_track)`` or ``None`` when nothing is playing.
        """
        async with self.registry.lock(guild_id):
            session = self.registry.get(guild_id)
            if session is None or session.state is not SessionState.PLAYING:
                return None
            skipped = session.now_playing
            await self._call("skip", guild_id, self._audio.skip(guild_id))
            nxt = session.advance()
            if nxt is not None:
                await self._call("play", guild_id, self._audio.play(guild_id, nxt))
                session.start_track(nxt)
        metric_inc("skip")
        logger.info("Skipped guild=%s title=%s next=%s", guild_id, truncate(skipped.title, 80), nxt.title if nxt else None)
        return skipped, nxt

    def now_playing(self, guild_id: int) -> Optional[TrackDescriptor]:
        session = self.registry.get(guild_id)
        if session is None:
            return None
        return session.now_playing

    # ---- events ---------------------------------------------------------

    async def handle_event(self, event: PlaybackEvent) -> None:
        metric_inc("track_events")
        if event.kind is PlaybackEventKind.VOICE_CLOSED:
            await self._on_voice_closed(event)
        elif event.kind is PlaybackEventKind.VOICE_MOVED:
            await self._on_voice_moved(event)
        elif event.advances_queue:
            await self._on_track_finished(event)
        else:
            logger.debug("Ignoring %s reason=%s guild=%s", event.kind.value, event.reason, event.guild_id)

    async def _on_track_finished(self, event: PlaybackEvent) -> None:
        guild_id = event.guild_id
        async with self.registry.lock(guild_id):
            session = self.registry.get(guild_id)
            if session is None or session.state is not SessionState.PLAYING:
                return
            if event.track is not None and event.track != session.now_playing:
                logger.debug("Stale track end guild=%s title=%s", guild_id, event.track.title)
                return
            if self._audio.currently_playing(guild_id) is not None:
                return
            nxt = session.advance()
            while nxt is not None:
                try:
                    await self._call("play", guild_id, self._audio.play(guild_id, nxt))
                except ExternalServiceError:
                    logger.warning("Dropping unplayable track guild=%s title=%s", guild_id, truncate(nxt.title, 80))
                    nxt = session.advance()
                    continue
                session.start_track(nxt)
                logger.info("Advanced guild=%s title=%s", guild_id, truncate(nxt.title, 80))
                return
            logger.info("Queue finished guild=%s", guild_id)

    async def _on_voice_closed(self, event: PlaybackEvent) -> None:
        guild_id = event.guild_id
        async with self.registry.lock(guild_id):
            session = self.registry.get(guild_id)
            if session is None or not session.connected:
                return
            if self._voice.is_attached(guild_id):
                # echo of our own leave or rollback, arriving after a newer join
                logger.debug("Ignoring voice close for live connection guild=%s channel=%s", guild_id, event.channel_id)
                return
            await self._best_effort("audio session destroy", guild_id, self._audio.destroy_session(guild_id))
            await self._best_effort("voice detach", guild_id, self._voice.detach(guild_id))
            session.reset()
        metric_inc("voice_closed")
        logger.info("Voice closed externally; session reset guild=%s", guild_id)

    async def _on_voice_moved(self, event: PlaybackEvent) -> None:
        guild_id = event.guild_id
        async with self.registry.lock(guild_id):
            session = self.registry.get(guild_id)
            if session is None or not session.connected or event.channel_id is None:
                return
            previous = session.voice_channel_id
            session.voice_channel_id = event.channel_id
        logger.info("Moved to voice channel guild=%s channel=%s (from %s)", guild_id, event.channel_id, previous)

    async def _event_loop(self) -> None:
        while True:
            event = await self.events.get()
            try:
                await self.handle_event(event)
            except Exception:
                logger.exception("Playback event handling failed guild=%s", event.guild_id)
            finally:
                self.events.task_done()

    def start_event_loop(self) -> asyncio.Task:
        if self._event_task is not None and not self._event_task.done():
            return self._event_task
        self._event_task = asyncio.get_running_loop().create_task(self._event_loop())
        return self._event_task

    async def stop_event_loop(self) -> None:
        t = self._event_task
        self._event_task = None
        if t is None:
            return
        t.cancel()
        try:
            await t
        except asyncio.CancelledError:
            pass
