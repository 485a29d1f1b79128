"""ADIF import: tokenizer, record parser, and whole-log loader.

The parser is intentionally tolerant. It looks for <TAG:len>value (and
<TAG:len:type>value) pairs, drops everything up to <EOH>, and splits records on
<EOR>. Bad fields are skipped, records without CALL or QSO_DATE are dropped,
and only failing to read the file is an error.

Multi-threaded processing is used for large ADIF files; record order is kept.
"""

from __future__ import annotations

import concurrent.futures
import logging
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, Iterator, List, NamedTuple, Optional, Union

from .errors import AdifReadError, InvalidRecordError
from .models import QSO, QslStatus
from .parallel_utils import get_optimal_workers, should_use_parallel

# ADIF spec: https://www.adif.org/

logger = logging.getLogger(__name__)

_EOH_RE = re.compile(r"<eoh>", re.IGNORECASE)
_EOR_RE = re.compile(r"<eor>", re.IGNORECASE)
# name, length, optional type indicator, then the data up to the next tag
_FIELD_RE = re.compile(r"<([^:<>]+):([^:<>]*)(?::([^<>]*))?>([^<]*)")
_DATE_RE = re.compile(r"\d{8}", re.ASCII)
_TIME_RE = re.compile(r"\d{6}", re.ASCII)

FIELD_MAP_IN = {
    "CALL": "call",
    "QSO_DATE": "qso_date",
    "TIME_ON": "time_on",
    "QSO_DATE_OFF": "qso_date_off",
    "TIME_OFF": "time_off",
    "BAND": "band",
    "MODE": "mode",
    "FREQ": "freq",
    "RST_SENT": "rst_sent",
    "RST_RCVD": "rst_rcvd",
    "QTH": "qth",
    "NAME": "name",
    "COMMENT": "comment",
    "GRIDSQUARE": "gridsquare",
    "COUNTRY": "country",
    "DXCC": "dxcc",
    "MY_GRIDSQUARE": "my_gridsquare",
    "STATION_CALLSIGN": "station_callsign",
    "MY_RIG": "my_rig",
    "MY_ANTENNA": "my_antenna",
    "TX_PWR": "tx_pwr",
    "QSL_SENT": "qsl_sent",
    "QSL_RCVD": "qsl_rcvd",
    "LOTW_QSL_SENT": "lotw_qsl_sent",
    "LOTW_QSL_RCVD": "lotw_qsl_rcvd",
    "EQSL_QSL_SENT": "eqsl_qsl_sent",
    "EQSL_QSL_RCVD": "eqsl_qsl_rcvd",
}

QSL_FIELDS = {
    "qsl_sent",
    "qsl_rcvd",
    "lotw_qsl_sent",
    "lotw_qsl_rcvd",
    "eqsl_qsl_sent",
    "eqsl_qsl_rcvd",
}


class AdifField(NamedTuple):
    """One <NAME:LENGTH> tag and the raw text that follows it."""

    name: str
    length: int
    data: str

    @property
    def value(self) -> Optional[str]:
        """The declared-length value, or None if the data is too short."""
        if len(self.data) < self.length:
            return None
        return self.data[: self.length]


def strip_header(text: str) -> str:
    """Drop everything up to and including <EOH>; text without one is returned as is."""
    m = _EOH_RE.search(text)
    if m is None:
        return text
    return text[m.end() :]


def split_records(text: str) -> List[str]:
    """Split header-less ADIF text into non-empty, stripped record chunks."""
    return [chunk.strip() for chunk in _EOR_RE.split(text) if chunk.strip()]


def iter_fields(text: str) -> Iterator[AdifField]:
    """Yield each field tag found in a record chunk.

    Field names are uppercased. Tags whose length isn't a plain non-negative
    ASCII integer are skipped.
    """
    for m in _FIELD_RE.finditer(text):
        name, length, _type, data = m.groups()
        if not (length.isascii() and length.isdigit()):
            continue
        yield AdifField(name.strip().upper(), int(length), data)


def parse_timestamp(date: str, time_on: str) -> Optional[datetime]:
    """Combine an ADIF date (YYYYMMDD) and time (HHMMSS) into an aware UTC datetime.

    Returns None for anything that isn't exactly 8 + 6 digits forming a real
    calendar date and time of day.
    """
    if not _DATE_RE.fullmatch(date or "") or not _TIME_RE.fullmatch(time_on or ""):
        return None
    try:
        return datetime(
            int(date[0:4]),
            int(date[4:6]),
            int(date[6:8]),
            int(time_on[0:2]),
            int(time_on[2:4]),
            int(time_on[4:6]),
            tzinfo=UTC,
        )
    except ValueError:
        return None


def parse_record(text: str) -> QSO:
    """Build a QSO from a single record chunk.

    Raises InvalidRecordError when CALL or QSO_DATE is missing after mapping.
    """
    values: Dict[str, Union[str, QslStatus]] = {}
    for fld in iter_fields(text):
        attr = FIELD_MAP_IN.get(fld.name)
        if attr is None:
            continue
        raw = fld.value
        if raw is None:
            continue
        value = raw.strip()
        if attr == "call":
            values[attr] = value.upper()
        elif attr in QSL_FIELDS:
            values[attr] = QslStatus.from_adif(value)
        else:
            values[attr] = value

    call = values.get("call", "")
    qso_date = values.get("qso_date", "")
    if not call or not qso_date:
        raise InvalidRecordError("missing required fields (CALL or QSO_DATE)")

    timestamp = parse_timestamp(str(qso_date), str(values.get("time_on", "")))
    return QSO(timestamp=timestamp, **values)


def _process_adif_chunk(chunk: str) -> Optional[QSO]:
    """Parse a single record chunk, returning None for invalid records.

    Safe to call from worker threads.
    """
    try:
        return parse_record(chunk)
    except InvalidRecordError:
        return None


def _collect(results: List[Optional[QSO]]) -> List[QSO]:
    records = [qso for qso in results if qso is not None]
    dropped = len(results) - len(records)
    if dropped:
        logger.debug("Dropped %d invalid ADIF record(s)", dropped)
    return records


def load_adif(text: str) -> List[QSO]:
    """Parse ADIF text into a list of QSO objects (best effort).

    Records without CALL or QSO_DATE are skipped; file order is preserved.
    An empty or header-only document yields an empty list.

    For large files, consider using load_adif_parallel() for better performance.
    """
    chunks = split_records(strip_header(text))
    return _collect([_process_adif_chunk(chunk) for chunk in chunks])


def load_adif_parallel(text: str, max_workers: Optional[int] = None) -> List[QSO]:
    """Parse ADIF text using a thread pool.

    Produces exactly what load_adif() would, in the same order. Small documents
    are parsed sequentially.

    Args:
        text: ADIF text content
        max_workers: Maximum number of worker threads

    Returns:
        List of parsed QSO objects
    """
    chunks = split_records(strip_header(text))
    if not should_use_parallel(len(chunks)):
        return _collect([_process_adif_chunk(chunk) for chunk in chunks])

    workers = get_optimal_workers(max_workers)
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        # map() yields results in submission order
        results = list(executor.map(_process_adif_chunk, chunks, chunksize=256))
    return _collect(results)


def load_adif_file(path: Union[str, Path], parallel: bool = True) -> List[QSO]:
    """Read and parse an ADIF file from disk.

    Raises AdifReadError if the file cannot be opened or read; content problems
    never raise.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise AdifReadError(f"failed to open ADIF file {p}: {e}") from e

    if parallel:
        return load_adif_parallel(text)
    return load_adif(text)
