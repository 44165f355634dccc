from __future__ import annotations
from dataclasses import dataclass
import os
from typing import Mapping, Optional, Tuple


@dataclass(frozen=True)
class LedgerConfig:
    loan_periods: Tuple[int, ...] = (7, 14)
    default_loan_days: int = 7
    daily_fine: int = 10
    recently_viewed_limit: int = 5
    recently_played_limit: int = 20
    near_due_days: int = 2
    data_dir: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "LedgerConfig":
        """
        Build a config from LIBLEDGER_* variables, falling back to defaults.
        LIBLEDGER_LOAN_PERIODS is a comma separated list of days.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        periods = defaults.loan_periods
        raw_periods = env.get("LIBLEDGER_LOAN_PERIODS")
        if raw_periods:
            periods = tuple(int(p) for p in raw_periods.split(",") if p.strip())

        return cls(
            loan_periods=periods,
            default_loan_days=int(env.get("LIBLEDGER_DEFAULT_LOAN_DAYS", defaults.default_loan_days)),
            daily_fine=int(env.get("LIBLEDGER_DAILY_FINE", defaults.daily_fine)),
            recently_viewed_limit=int(
                env.get("LIBLEDGER_RECENTLY_VIEWED_LIMIT", defaults.recently_viewed_limit)
            ),
            recently_played_limit=int(
                env.get("LIBLEDGER_RECENTLY_PLAYED_LIMIT", defaults.recently_played_limit)
            ),
            near_due_days=int(env.get("LIBLEDGER_NEAR_DUE_DAYS", defaults.near_due_days)),
            data_dir=env.get("LIBLEDGER_DATA_DIR") or None,
        )
