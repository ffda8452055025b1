"""
Prefix command dispatch.

``CommandDispatcher`` turns an inbound chat message into a handler call:
it checks the prefix, splits off the command name, enforces the minimum
argument count and renders every ``MusicManError`` as a reply in the
originating channel. Unknown commands get no reply at all.
"""
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from musicman.coordinator import PlaybackCoordinator
from musicman.exceptions import ArgumentError, MusicManError
from musicman.messages import msg
from musicman.metrics import metric_inc
from musicman.services import ChatGateway
from musicman.utils import truncate

logger = logging.getLogger("MusicMan.Dispatcher")


@dataclass(frozen=True)
class InboundMessage:
    guild_id: int
    channel_id: int
    author_id: int
    content: str


@dataclass
class CommandContext:
    message: InboundMessage
    name: str
    args: str
    prefix: str
    coordinator: PlaybackCoordinator
    gateway: ChatGateway
    dispatcher: "CommandDispatcher"

    @property
    def guild_id(self) -> int:
        return self.message.guild_id

    @property
    def argv(self) -> List[str]:
        return self.args.split()


Handler = Callable[[CommandContext], Awaitable[Optional[str]]]


@dataclass(frozen=True)
class Command:
    name: str
    handler: Handler
    aliases: Tuple[str, ...] = field(default_factory=tuple)
    min_args: int = 0
    usage: str = ""
    description: str = ""


class CommandDispatcher:
    def __init__(self, prefix: str, coordinator: PlaybackCoordinator, gateway: ChatGateway) -> None:
        if not prefix:
            raise ValueError("prefix must not be empty")
        self.prefix = prefix
        self.coordinator = coordinator
        self.gateway = gateway
        self._commands: List[Command] = []
        self._lookup: Dict[str, Command] = {}

    def register(
        self,
        name: str,
        handler: Handler,
        *,
        aliases: Sequence[str] = (),
        min_args: int = 0,
        usage: Optional[str] = None,
        description: str = "",
    ) -> Command:
        cmd = Command(
            name=name.lower(),
            handler=handler,
            aliases=tuple(a.lower() for a in aliases),
            min_args=min_args,
            usage=usage or name.lower(),
            description=description,
        )
        for key in (cmd.name,) + cmd.aliases:
            if key in self._lookup:
                raise ValueError(f"command name {key!r} already registered")
        for key in (cmd.name,) + cmd.aliases:
            self._lookup[key] = cmd
        self._commands.append(cmd)
        return cmd

    @property
    def commands(self) -> List[Command]:
        return list(self._commands)

    def resolve(self, name: str) -> Optional[Command]:
        return self._lookup.get(name.lower())

    def parse(self, content: str) -> Optional[Tuple[str, str]]:
        """Split ``content`` into ``(name, raw_args)``; ``None`` if not a command."""
        text = (content or "").strip()
        if not text.startswith(self.prefix):
            return None
        body = text[len(self.prefix):]
        parts = body.split(None, 1)
        if not parts or body[:1].isspace():
            return None
        name = parts[0].lower()
        raw_args = parts[1].strip() if len(parts) > 1 else ""
        return name, raw_args

    async def handle(self, message: InboundMessage) -> Optional[str]:
        """Run the command in ``message`` and return the reply text, if any."""
        parsed = self.parse(message.content)
        if parsed is None:
            return None
        name, raw_args = parsed
        cmd = self.resolve(name)
        if cmd is None:
            metric_inc("commands_unknown")
            logger.debug("Unknown command %r guild=%s", name, message.guild_id)
            return None
        metric_inc("commands_dispatched")
        ctx = CommandContext(
            message=message,
            name=cmd.name,
            args=raw_args,
            prefix=self.prefix,
            coordinator=self.coordinator,
            gateway=self.gateway,
            dispatcher=self,
        )
        try:
            if len(ctx.argv) < cmd.min_args:
                raise ArgumentError(cmd.usage)
            return await cmd.handler(ctx)
        except MusicManError as e:
            metric_inc("command_errors")
            logger.info("Command %s failed guild=%s: %s", cmd.name, message.guild_id, type(e).__name__)
            return msg(e.message_key, prefix=self.prefix, detail=e.reply_detail)
        except Exception:
            metric_inc("command_errors")
            logger.exception("Unhandled error in command %s guild=%s", cmd.name, message.guild_id)
            return msg("GENERIC_ERROR")

    async def dispatch(self, message: InboundMessage) -> Optional[str]:
        """Handle ``message`` and send the reply to its channel."""
        reply = await self.handle(message)
        if reply:
            try:
                await self.gateway.send(message.channel_id, reply)
            except Exception:
                logger.warning("Failed to send reply channel=%s text=%s", message.channel_id, truncate(reply, 80), exc_info=True)
        return reply
