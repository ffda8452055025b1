"""
Metrics tracking for MusicMan
"""
from typing import Dict

# --- Metrics ---
_METRICS = {
    "commands_dispatched": 0,
    "commands_unknown": 0,
    "command_errors": 0,
    "join_success": 0,
    # join attempts that had to undo a half-built session
    "join_rollback": 0,
    "leave": 0,
    "play_started": 0,
    "play_enqueued": 0,
    "play_not_found": 0,
    "skip": 0,
    "external_failures": 0,
    "external_timeouts": 0,
    "track_events": 0,
    "voice_closed": 0,
}


def metric_inc(name: str, delta: int = 1):
    """Increment a metric by delta."""
    _METRICS[name] = _METRICS.get(name, 0) + delta


def metrics_snapshot() -> Dict[str, int]:
    """Get a snapshot of current metrics."""
    return dict(_METRICS)


def reset_metrics():
    for key in _METRICS:
        _METRICS[key] = 0
