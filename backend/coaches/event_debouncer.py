"""
Per-error debouncing for spoken corrections.

Timing rules (all configurable):
- initial debounce right after reset, before any correction goes out
- cooldown per (exercise, error type) between two sends
- extended cooldown once a key has been sent/seen often
- occurrences older than the tracking window are forgotten
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_S = 3.0
EXTENDED_COOLDOWN_S = 10.0
EXTENDED_COOLDOWN_THRESHOLD = 3
INITIAL_DEBOUNCE_S = 0.5
TRACKING_WINDOW_S = 30.0


@dataclass
class DebounceRecord:
    last_sent_at: float
    last_seen_at: float
    occurrence_count: int = 1


class FormEventDebouncer:
    """
    Decides whether a correction may be sent now.

    Usage:
        debouncer = FormEventDebouncer(cooldown_s=3.0)
        if debouncer.should_send("squat", "forward_lean"):
            prior = debouncer.get_occurrence_count("squat", "forward_lean")
            debouncer.record_sent("squat", "forward_lean")
        else:
            debouncer.record_suppressed("squat", "forward_lean")
    """

    def __init__(
        self,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        extended_cooldown_s: float = EXTENDED_COOLDOWN_S,
        extended_threshold: int = EXTENDED_COOLDOWN_THRESHOLD,
        initial_debounce_s: float = INITIAL_DEBOUNCE_S,
        tracking_window_s: float = TRACKING_WINDOW_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cooldown_s = cooldown_s
        self.extended_cooldown_s = max(extended_cooldown_s, cooldown_s)
        self.extended_threshold = extended_threshold
        self.initial_debounce_s = initial_debounce_s
        self.tracking_window_s = tracking_window_s
        self.clock = clock
        self._records: Dict[Tuple[str, str], DebounceRecord] = {}
        self._started_at = clock()
        self._last_any_sent_at: Optional[float] = None

    def _record(self, exercise_id: str, error_type: str) -> Optional[DebounceRecord]:
        """Live record for a key, dropping it once the tracking window has passed."""
        key = (exercise_id, error_type)
        record = self._records.get(key)
        if record is not None and self.clock() - record.last_seen_at > self.tracking_window_s:
            del self._records[key]
            return None
        return record

    def cooldown_for(self, occurrence_count: int) -> float:
        if occurrence_count >= self.extended_threshold:
            return self.extended_cooldown_s
        return self.cooldown_s

    def has_passed_initial_debounce(self) -> bool:
        return self.clock() - self._started_at >= self.initial_debounce_s

    def should_send(self, exercise_id: str, error_type: str) -> bool:
        if not self.has_passed_initial_debounce():
            return False
        record = self._record(exercise_id, error_type)
        if record is None:
            return True
        return self.clock() - record.last_sent_at >= self.cooldown_for(record.occurrence_count)

    def get_occurrence_count(self, exercise_id: str, error_type: str) -> int:
        record = self._record(exercise_id, error_type)
        return record.occurrence_count if record else 0

    def record_sent(self, exercise_id: str, error_type: str):
        now = self.clock()
        record = self._record(exercise_id, error_type)
        if record is None:
            self._records[(exercise_id, error_type)] = DebounceRecord(last_sent_at=now, last_seen_at=now)
        else:
            record.last_sent_at = now
            record.last_seen_at = now
            record.occurrence_count += 1
        self._last_any_sent_at = now

    def record_suppressed(self, exercise_id: str, error_type: str):
        """A repeat inside the cooldown: not sent, but it still counts."""
        record = self._record(exercise_id, error_type)
        if record is None:
            return
        record.last_seen_at = self.clock()
        record.occurrence_count += 1

    def time_until_ready(self, exercise_id: str, error_type: str) -> float:
        record = self._record(exercise_id, error_type)
        if record is None:
            return 0.0
        remaining = self.cooldown_for(record.occurrence_count) - (self.clock() - record.last_sent_at)
        return max(0.0, remaining)

    def reset(self):
        """Forget everything; call on session start and exercise change."""
        self._records.clear()
        self._started_at = self.clock()
        self._last_any_sent_at = None

    def reset_for_exercise(self, exercise_id: str):
        for key in [k for k in self._records if k[0] == exercise_id]:
            del self._records[key]

    def get_stats(self) -> Dict[str, float]:
        now = self.clock()
        return {
            "tracked_errors": len(self._records),
            "session_duration": now - self._started_at,
            "last_error_sent_ago": now - self._last_any_sent_at if self._last_any_sent_at is not None else -1,
        }
