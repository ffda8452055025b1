"""Command groups for MusicMan.

Each submodule holds the handlers for one group; ``register_commands``
wires them into a dispatcher so ``bot.py`` stays thin.
"""
from musicman.commands import general, playback

__all__ = [
    "general",
    "playback",
    "register_commands",
]


def register_commands(dispatcher) -> None:
    dispatcher.register("ping", general.handle_ping, description="Gateway latency")
    dispatcher.register("join", playback.handle_join, description="Join your voice channel")
    dispatcher.register("leave", playback.handle_leave, description="Leave the voice channel")
    dispatcher.register(
        "play", playback.handle_play, min_args=1, usage="play <query>",
        description="Play or queue the top search result",
    )
    dispatcher.register("skip", playback.handle_skip, description="Skip the current track")
    dispatcher.register(
        "now_playing", playback.handle_now_playing, aliases=("np",),
        description="Show the current track",
    )
    dispatcher.register("help", general.handle_help, description="List commands")
