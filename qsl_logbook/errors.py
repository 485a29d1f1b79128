"""Exception types raised by QSL Logbook."""

from __future__ import annotations


class QslLogbookError(Exception):
    """Base class for all QSL Logbook errors."""


class AdifReadError(QslLogbookError):
    """The ADIF log could not be opened or read."""


class InvalidRecordError(QslLogbookError):
    """A record is missing CALL or QSO_DATE and cannot be used."""


class MapError(QslLogbookError):
    """A QSO map could not be computed or rendered."""
