"""
AI call monitoring for polychat.
Records per-action call counts, latency and recent failures of the text service.
"""

import json
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any

MAX_RECENT_ERRORS = 20


@dataclass
class ActionStats:
    """Statistics for a single AI action."""
    name: str
    call_count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_latency: float = 0.0
    last_call: datetime | None = None
    last_error: str | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def avg_latency(self) -> float:
        if self.call_count == 0:
            return 0.0
        return self.total_latency / self.call_count

    @property
    def success_rate(self) -> float:
        """Success rate as percentage."""
        if self.call_count == 0:
            return 0.0
        return (self.success_count / self.call_count) * 100

    def record(self, latency: float, error: str | None = None) -> None:
        self.call_count += 1
        self.total_latency += latency
        self.last_call = datetime.now()
        if error is None:
            self.success_count += 1
            return
        self.error_count += 1
        self.last_error = error
        self.errors.append({
            "timestamp": self.last_call.isoformat(),
            "error": error,
            "latency": latency,
        })
        del self.errors[:-MAX_RECENT_ERRORS]


class ActionMonitor:
    """Tracks AI text-service calls by action name."""

    def __init__(self):
        self.stats: dict[str, ActionStats] = {}
        self.session_start = datetime.now()
        self._lock = threading.Lock()

    def record_execution(self, action: str, latency: float, success: bool, error: str | None = None) -> None:
        with self._lock:
            stats = self.stats.setdefault(action, ActionStats(name=action))
            stats.record(latency, None if success else (error or "Unknown error"))

    def reset(self) -> None:
        with self._lock:
            self.stats.clear()
            self.session_start = datetime.now()

    def get_summary(self) -> dict[str, Any]:
        """Get summary statistics."""
        with self._lock:
            total_calls = sum(s.call_count for s in self.stats.values())
            total_success = sum(s.success_count for s in self.stats.values())
            total_latency = sum(s.total_latency for s in self.stats.values())
            return {
                "session_start": self.session_start.isoformat(),
                "total_calls": total_calls,
                "successful_calls": total_success,
                "failed_calls": total_calls - total_success,
                "success_rate_percent": (total_success / total_calls * 100) if total_calls else 0.0,
                "avg_latency_seconds": total_latency / total_calls if total_calls else 0.0,
                "actions": {
                    name: {
                        "call_count": s.call_count,
                        "error_count": s.error_count,
                        "success_rate_percent": s.success_rate,
                        "avg_latency": s.avg_latency,
                        "last_error": s.last_error,
                    }
                    for name, s in self.stats.items()
                },
            }

    def save_to_file(self, filepath: Path) -> None:
        """Save statistics to a JSON file."""
        data = {"exported_at": datetime.now().isoformat(), "data": self.get_summary()}
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)


# Process-wide monitor shared by every AI service instance
monitor = ActionMonitor()


def monitored(action: str):
    """Decorator recording latency and outcome of an async AI call."""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start = time.monotonic()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                monitor.record_execution(action, time.monotonic() - start, success=False, error=str(e))
                raise
            monitor.record_execution(action, time.monotonic() - start, success=True)
            return result
        return wrapper
    return decorator
