"""
Rolling daily score history (CSV via pandas).

One row per exchange-local calendar day, columns:
  date, composite, pillar_<key>...
Newest first, at most HISTORY_MAX_DAYS rows. Columns are additive; unknown
pillar columns are carried through untouched.
"""
import os
import threading
from pathlib import Path
from typing import Callable, Optional

import pandas as pd

from common.errors import StorageError
from common.logger import get_logger
from common.market_hours import exchange_today
from common.models import ScoreEntry
from config.settings import HISTORY_MAX_DAYS, HISTORY_PATH, PERCENTILE_WINDOW_DAYS

logger = get_logger("history")

PILLAR_PREFIX = "pillar_"


class ScoreHistoryStore:
    def __init__(
        self,
        path: Path = HISTORY_PATH,
        max_days: int = HISTORY_MAX_DAYS,
        window: int = PERCENTILE_WINDOW_DAYS,
        today: Callable[[], str] = exchange_today,
    ):
        self.path = Path(path)
        self.max_days = max_days
        self.window = window
        self._today = today
        # serialises read-modify-write across worker threads
        self._lock = threading.Lock()

    # ── CSV helpers ──────────────────────────────────────────────────────────

    def _read(self) -> pd.DataFrame:
        if not self.path.exists():
            return pd.DataFrame(columns=["date", "composite"])
        try:
            df = pd.read_csv(self.path, dtype={"date": str})
            if not {"date", "composite"}.issubset(df.columns):
                raise ValueError(f"missing columns in {self.path.name}")
            df = df.dropna(subset=["date", "composite"])
            df["composite"] = df["composite"].astype(int)
            return df.sort_values("date", ascending=False).reset_index(drop=True)
        except (OSError, ValueError, pd.errors.ParserError) as e:
            logger.warning(f"History unreadable ({e}), treating as empty")
            return pd.DataFrame(columns=["date", "composite"])

    def _write(self, df: pd.DataFrame) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            df.to_csv(tmp, index=False)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StorageError(f"could not write {self.path.name}: {e}") from e

    # ── Public API ───────────────────────────────────────────────────────────

    def save(self, composite: int, pillar_scores: dict[str, int]) -> None:
        """Upsert today's entry. Never raises."""
        with self._lock:
            self._save(composite, pillar_scores)

    def _save(self, composite: int, pillar_scores: dict[str, int]) -> None:
        today = self._today()
        df = self._read()
        row = {"date": today, "composite": int(composite)}
        row.update({f"{PILLAR_PREFIX}{k}": int(v) for k, v in pillar_scores.items()})

        df = df[df["date"] != today]
        new = pd.DataFrame([row])
        df = new if df.empty else pd.concat([new, df], ignore_index=True)
        df = df.sort_values("date", ascending=False).head(self.max_days)

        try:
            self._write(df)
            logger.info(f"Saved composite {composite} for {today} ({len(df)} days stored)")
            return
        except StorageError as e:
            logger.warning(f"History write failed ({e}), retrying with {self.window} most recent days")
        try:
            self._write(df.head(self.window))
        except StorageError as e:
            logger.error(f"Reduced history write failed, skipping save: {e}")

    def history(self) -> list[ScoreEntry]:
        df = self._read()
        entries = []
        for rec in df.to_dict("records"):
            pillars = {
                col[len(PILLAR_PREFIX):]: int(val)
                for col, val in rec.items()
                if col.startswith(PILLAR_PREFIX) and pd.notna(val)
            }
            entries.append(ScoreEntry(date=rec["date"], composite=int(rec["composite"]), pillars=pillars))
        return entries

    def history_length(self) -> int:
        return len(self._read())

    def last_scores(self, n: int = PERCENTILE_WINDOW_DAYS) -> list[int]:
        """Most recent n composites, oldest first."""
        df = self._read().head(n)
        return [int(v) for v in reversed(df["composite"].tolist())]

    def percentile(self, score: float) -> Optional[int]:
        """Share of the last window's composites strictly below score, or None
        when fewer than window days are stored."""
        df = self._read()
        if len(df) < self.window:
            return None
        recent = df["composite"].head(self.window)
        below = int((recent < score).sum())
        return round_half_up_ratio(below, self.window)

    def clear(self) -> None:
        with self._lock:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not clear history: {e}")


def round_half_up_ratio(count: int, total: int) -> int:
    """round(100 * count / total), halves rounded up."""
    return (200 * count + total) // (2 * total)
