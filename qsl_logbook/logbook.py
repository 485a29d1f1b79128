"""Query layer over one parsed ADIF log.

- `Logbook` holds an immutable, file-ordered tuple of QSOs and answers the
  lookups the site needs: fuzzy call+time search, per-call history, counts,
  most-recent contacts, and the paper QSL hall of fame.
- `compute_summary` bundles the figures shown on the home page.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple, TypedDict, Union

from .adif import load_adif_file
from .models import QSO, QslStatus, now_utc

DEFAULT_LATEST_LIMIT = 30
DEFAULT_TOLERANCE_MINUTES = 10
_OLDEST = datetime.min.replace(tzinfo=UTC)


class LogbookSummary(TypedDict):
    """Type definition for the home page summary dictionary."""
    total_qsos: int
    unique_countries: int
    latest_qsos: List[QSO]
    paper_qsl_hall_of_fame: List[QSO]
    latest_qso_date: Optional[str]
    latest_qso_at: Optional[datetime]


def normalize_call(call: Optional[str]) -> str:
    """Trim and uppercase a callsign; None becomes ""."""
    return (call or "").strip().upper()


def _as_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with QSO timestamps."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Logbook:
    """An immutable snapshot of the QSOs parsed from one ADIF file."""

    def __init__(
        self,
        qsos: Iterable[QSO],
        source: Optional[Path] = None,
        loaded_at: Optional[datetime] = None,
    ) -> None:
        self._qsos: Tuple[QSO, ...] = tuple(qsos)
        self.source = source
        self.loaded_at = loaded_at or now_utc()

        by_call: Dict[str, List[QSO]] = defaultdict(list)
        for q in self._qsos:
            by_call[q.call].append(q)
        self._by_call = dict(by_call)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Logbook":
        """Parse an ADIF file into a new Logbook.

        Raises AdifReadError if the file cannot be read.
        """
        p = Path(path)
        return cls(load_adif_file(p), source=p)

    def __len__(self) -> int:
        return len(self._qsos)

    def __iter__(self) -> Iterator[QSO]:
        return iter(self._qsos)

    def search(
        self,
        call: str,
        when: datetime,
        tolerance_minutes: int = DEFAULT_TOLERANCE_MINUTES,
    ) -> Optional[QSO]:
        """Find the QSO with `call` whose start time is closest to `when`.

        Only QSOs within `tolerance_minutes` (inclusive) are considered. When two
        are equally close, the one earlier in the log wins.
        """
        target = _as_utc(when)
        tolerance = timedelta(minutes=tolerance_minutes)
        best: Optional[QSO] = None
        best_diff: Optional[timedelta] = None

        for q in self._by_call.get(normalize_call(call), ()):
            if q.timestamp is None:
                continue
            diff = abs(q.timestamp - target)
            if diff > tolerance:
                continue
            if best_diff is None or diff < best_diff:
                best, best_diff = q, diff
        return best

    def by_callsign(self, call: str) -> List[QSO]:
        """Return every QSO with this exact callsign, in log order."""
        return list(self._by_call.get(normalize_call(call), ()))

    def total_count(self) -> int:
        return len(self._qsos)

    def unique_countries(self) -> Set[str]:
        return {q.country for q in self._qsos if q.country}

    def unique_countries_count(self) -> int:
        return len(self.unique_countries())

    def latest(self, limit: int = DEFAULT_LATEST_LIMIT) -> List[QSO]:
        """Return up to `limit` QSOs, newest first.

        QSOs without a timestamp sort last; ties keep log order.
        """
        if limit <= 0:
            return []
        ordered = sorted(
            self._qsos,
            key=lambda q: (q.timestamp is not None, q.timestamp or _OLDEST),
            reverse=True,
        )
        return ordered[:limit]

    def latest_one(self) -> Optional[QSO]:
        """Return the QSO with the latest timestamp, ignoring ones without."""
        latest: Optional[QSO] = None
        for q in self._qsos:
            if q.timestamp is None:
                continue
            if latest is None or q.timestamp > latest.timestamp:  # type: ignore[operator]
                latest = q
        return latest

    def paper_qsl_hall_of_fame(self) -> List[QSO]:
        """One QSO per callsign with a paper QSL received, sorted by callsign.

        When a callsign appears more than once, a QSO carrying the operator's
        name replaces an earlier one without it.
        """
        seen: Dict[str, QSO] = {}
        for q in self._qsos:
            if q.qsl_rcvd != QslStatus.YES:
                continue
            existing = seen.get(q.call)
            if existing is None or (q.name and not existing.name):
                seen[q.call] = q
        return [seen[call] for call in sorted(seen)]


def compute_summary(logbook: Logbook, latest_limit: int = DEFAULT_LATEST_LIMIT) -> LogbookSummary:
    """Compute the figures shown on the home page.

    Returns totals, the most recent QSOs, the paper QSL hall of fame, and the
    date of the most recent contact (None when no QSO has a timestamp).
    """
    latest = logbook.latest_one()
    return {
        "total_qsos": logbook.total_count(),
        "unique_countries": logbook.unique_countries_count(),
        "latest_qsos": logbook.latest(latest_limit),
        "paper_qsl_hall_of_fame": logbook.paper_qsl_hall_of_fame(),
        "latest_qso_date": latest.format_date() if latest else None,
        "latest_qso_at": latest.timestamp if latest else None,
    }
