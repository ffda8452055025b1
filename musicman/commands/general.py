import math

from musicman.messages import msg


async def handle_ping(ctx) -> str:
    latency = ctx.gateway.latency()
    if latency is None or math.isnan(latency) or math.isinf(latency):
        return msg("PING_UNAVAILABLE")
    return msg("PONG", ms=int(round(latency * 1000)))


async def handle_help(ctx) -> str:
    lines = [msg("HELP_HEADER")]
    for cmd in ctx.dispatcher.commands:
        names = "/".join(f"{ctx.prefix}{n}" for n in (cmd.name,) + cmd.aliases)
        usage = f" `{ctx.prefix}{cmd.usage}`" if cmd.usage != cmd.name else ""
        lines.append(f"{names}{usage} - {cmd.description}" if cmd.description else f"{names}{usage}")
    return "\n".join(lines)
