from datetime import UTC, datetime

import pytest

SAMPLE_ADIF = """Log exported for the QSL site
<ADIF_VER:5>3.1.4 <PROGRAMID:6>WSJT-X
<EOH>
<CALL:4>W1AW <QSO_DATE:8>20240115 <TIME_ON:6>143000 <BAND:3>20m <MODE:3>FT8
<GRIDSQUARE:4>FN31 <MY_GRIDSQUARE:6>LL75ra <COUNTRY:13>United States <QSL_RCVD:1>Y <EOR>
<CALL:5>m0xyz <QSO_DATE:8>20240116 <TIME_ON:6>090500 <BAND:3>40m <MODE:2>CW
<COUNTRY:7>England <QSL_RCVD:1>Y <EOR>
<CALL:5>M0XYZ <QSO_DATE:8>20240117 <TIME_ON:6>101500 <NAME:5>Alice
<COUNTRY:7>England <QSL_RCVD:1>Y <EOR>
<QSO_DATE:8>20240118 <TIME_ON:6>120000 <COMMENT:10>no call!!! <EOR>
<CALL:6>JA1DEF <QSO_DATE:8>20240119 <TIME_ON:6>230000 <COUNTRY:5>Japan <EOR>
"""


@pytest.fixture
def sample_adif():
    """ADIF text with four valid records and one without CALL."""
    return SAMPLE_ADIF


@pytest.fixture
def adif_file(tmp_path):
    """Write the sample log to a temporary file."""
    path = tmp_path / "log.adi"
    path.write_text(SAMPLE_ADIF, encoding="utf-8")
    return path


@pytest.fixture
def qso_factory():
    """Create QSOs for query tests."""
    from qsl_logbook.models import QSO

    def factory(call="W1AW", when=None, **fields):
        if when is not None:
            fields.setdefault("qso_date", when.strftime("%Y%m%d"))
            fields.setdefault("time_on", when.strftime("%H%M%S"))
            fields.setdefault("timestamp", when.replace(tzinfo=UTC))
        fields.setdefault("qso_date", "20240101")
        return QSO(call=call, **fields)

    return factory


@pytest.fixture
def base_time():
    return datetime(2024, 1, 15, 14, 30, 0, tzinfo=UTC)
