"""Data models used by QSL Logbook.

We expose a single SQLModel model, QSO, which represents one contact read from
the ADIF log. It is never persisted (no table); SQLModel gives us validation and
coercion of the QSL status codes. Fields mirror the ADIF names we import.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class QslStatus(str, Enum):
    """ADIF QSL sent/received codes; UNKNOWN stands for an empty field."""

    YES = "Y"
    NO = "N"
    REQUESTED = "R"
    INVALID = "I"
    UNKNOWN = ""

    @classmethod
    def from_adif(cls, value: Optional[str]) -> "QslStatus":
        """Coerce a raw ADIF value, mapping anything unrecognized to UNKNOWN."""
        try:
            return cls((value or "").strip().upper())
        except ValueError:
            return cls.UNKNOWN


# ISO 3166-1 alpha-2 codes (lower-case, as used by flag image services) keyed by
# the COUNTRY names loggers write. DXCC entities inside a country map to it.
COUNTRY_FLAG_CODES: dict[str, str] = {
    "Albania": "al",
    "Armenia": "am",
    "Asiatic Russia": "ru",
    "Asiatic Turkey": "tr",
    "Australia": "au",
    "Austria": "at",
    "Bahrain": "bh",
    "Belarus": "by",
    "Belgium": "be",
    "Bosnia-Herzegovina": "ba",
    "Brazil": "br",
    "Brunei Darussalam": "bn",
    "Bulgaria": "bg",
    "Canary Islands": "es",
    "Chile": "cl",
    "China": "cn",
    "Comoros": "km",
    "Crete": "gr",
    "Croatia": "hr",
    "Cyprus": "cy",
    "Czech Republic": "cz",
    "Denmark": "dk",
    "Dodecanese": "gr",
    "England": "gb",
    "Estonia": "ee",
    "European Russia": "ru",
    "Fed. Rep. of Germany": "de",
    "Finland": "fi",
    "France": "fr",
    "Georgia": "ge",
    "Greece": "gr",
    "Hungary": "hu",
    "India": "in",
    "Indonesia": "id",
    "Iraq": "iq",
    "Israel": "il",
    "Italy": "it",
    "Japan": "jp",
    "Jersey": "je",
    "Kazakhstan": "kz",
    "Kyrgyzstan": "kg",
    "Laos": "la",
    "Latvia": "lv",
    "Lebanon": "lb",
    "Lithuania": "lt",
    "Madeira Islands": "pt",
    "Malawi": "mw",
    "Montenegro": "me",
    "Namibia": "na",
    "Netherlands": "nl",
    "Northern Ireland": "gb",
    "Norway": "no",
    "Pakistan": "pk",
    "Poland": "pl",
    "Portugal": "pt",
    "Puerto Rico": "pr",
    "Qatar": "qa",
    "Republic of Korea": "kr",
    "Romania": "ro",
    "Sardinia": "it",
    "Saudi Arabia": "sa",
    "Scotland": "gb",
    "Serbia": "rs",
    "Singapore": "sg",
    "Slovak Republic": "sk",
    "Slovenia": "si",
    "South Africa": "za",
    "Spain": "es",
    "Sri Lanka": "lk",
    "Sweden": "se",
    "Switzerland": "ch",
    "Taiwan": "tw",
    "Thailand": "th",
    "Ukraine": "ua",
    "United Arab Emirates": "ae",
    "United States": "us",
    "Uzbekistan": "uz",
    "Wales": "gb",
    "West Malaysia": "my",
    # Common non-DXCC spellings
    "Germany": "de",
    "United Kingdom": "gb",
    "Russia": "ru",
    "Turkey": "tr",
    "South Korea": "kr",
    "Malaysia": "my",
}


class QSO(SQLModel):
    """A single QSO (contact) read from the ADIF log.

    Attributes
    - call: Worked station's callsign, uppercased and trimmed.
    - qso_date/time_on: Start of the contact as ADIF strings (YYYYMMDD, HHMMSS), UTC.
    - qso_date_off/time_off: Optional end of the contact.
    - band/mode/freq/rst_sent/rst_rcvd/tx_pwr: Radio details, kept as logged.
    - qth/name/comment: Notes about the other operator.
    - gridsquare/my_gridsquare: Maidenhead locators for the two stations.
    - country/dxcc: The other station's entity.
    - station_callsign/my_rig/my_antenna: The logging station's own setup.
    - qsl_*/lotw_*/eqsl_*: Confirmation status codes.
    - timestamp: Aware UTC datetime built from qso_date + time_on, None if malformed.
    """

    call: str = Field(description="Station callsign")
    qso_date: str = Field(description="QSO start date (YYYYMMDD)")
    time_on: str = ""
    qso_date_off: str = ""
    time_off: str = ""

    # Radio details
    band: str = ""
    mode: str = ""
    freq: str = ""
    rst_sent: str = ""
    rst_rcvd: str = ""
    tx_pwr: str = ""

    # Operator info
    qth: str = ""
    name: str = ""
    comment: str = ""
    gridsquare: str = ""
    country: str = ""
    dxcc: str = ""

    # Logging station
    my_gridsquare: str = ""
    station_callsign: str = ""
    my_rig: str = ""
    my_antenna: str = ""

    # Confirmations
    qsl_sent: QslStatus = QslStatus.UNKNOWN
    qsl_rcvd: QslStatus = QslStatus.UNKNOWN
    lotw_qsl_sent: QslStatus = QslStatus.UNKNOWN
    lotw_qsl_rcvd: QslStatus = QslStatus.UNKNOWN
    eqsl_qsl_sent: QslStatus = QslStatus.UNKNOWN
    eqsl_qsl_rcvd: QslStatus = QslStatus.UNKNOWN

    timestamp: Optional[datetime] = None

    def format_date(self) -> str:
        """Return the QSO date as YYYY-MM-DD, or the raw value if it isn't 8 chars."""
        d = self.qso_date
        if len(d) == 8:
            return f"{d[0:4]}-{d[4:6]}-{d[6:8]}"
        return d

    def format_time(self) -> str:
        """Return the start time as HH:MM (seconds dropped)."""
        t = self.time_on
        if len(t) >= 4:
            return f"{t[0:2]}:{t[2:4]}"
        return t

    def format_qso_time(self) -> str:
        if self.timestamp is not None:
            return self.timestamp.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S UTC")
        return f"{self.qso_date} {self.time_on} UTC"

    def flag_code(self) -> str:
        """Return the two-letter flag code for the country, or "" if unknown."""
        return COUNTRY_FLAG_CODES.get(self.country, "")

    def unix_time(self) -> int:
        """Unix seconds of the QSO start; 0 when there is no timestamp."""
        if self.timestamp is None:
            return 0
        return int(self.timestamp.timestamp())

    def has_grids(self) -> bool:
        return bool(self.my_gridsquare and self.gridsquare)


def now_utc() -> datetime:
    """Return the current time as an aware UTC datetime without microseconds."""
    return datetime.now(UTC).replace(microsecond=0)
