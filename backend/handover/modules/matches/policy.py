from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Mapping

HIGH_SUSPICION_REASONS = frozenset({"suspicious_behavior", "incorrect_details"})


@dataclass(frozen=True)
class MatchPolicy:
    confirmation_window: timedelta = timedelta(hours=48)
    verification_max_failures: int = 3
    verification_cooldown: timedelta = timedelta(seconds=30)
    verification_fuzzy_threshold: float = 0.85
    require_ownership_verification: bool = True
    rejection_flag_total: int = 3
    rejection_flag_high_suspicion: int = 2
    rejection_window: timedelta = timedelta(days=30)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "MatchPolicy":
        d = cls()
        return cls(
            confirmation_window=timedelta(hours=float(config.get("MATCH_CONFIRMATION_WINDOW_HOURS", 48))),
            verification_max_failures=int(config.get("VERIFICATION_MAX_FAILURES", d.verification_max_failures)),
            verification_cooldown=timedelta(seconds=float(config.get("VERIFICATION_COOLDOWN_SECONDS", 30))),
            verification_fuzzy_threshold=float(config.get("VERIFICATION_FUZZY_THRESHOLD", d.verification_fuzzy_threshold)),
            require_ownership_verification=bool(config.get("REQUIRE_OWNERSHIP_VERIFICATION", True)),
            rejection_flag_total=int(config.get("REJECTION_FLAG_TOTAL", d.rejection_flag_total)),
            rejection_flag_high_suspicion=int(config.get("REJECTION_FLAG_HIGH_SUSPICION", d.rejection_flag_high_suspicion)),
            rejection_window=timedelta(days=int(config.get("REJECTION_WINDOW_DAYS", 30))),
        )
