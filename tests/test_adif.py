from datetime import UTC, datetime

import pytest

from qsl_logbook.adif import (
    AdifField,
    iter_fields,
    load_adif,
    load_adif_file,
    load_adif_parallel,
    parse_record,
    parse_timestamp,
    split_records,
    strip_header,
)
from qsl_logbook.errors import AdifReadError, InvalidRecordError
from qsl_logbook.models import QslStatus


def test_load_sample(sample_adif):
    """Test that valid records are kept in file order and the bad one dropped."""
    parsed = load_adif(sample_adif)
    assert [q.call for q in parsed] == ["W1AW", "M0XYZ", "M0XYZ", "JA1DEF"]

    w1aw = parsed[0]
    assert w1aw.band == "20m"
    assert w1aw.mode == "FT8"
    assert w1aw.gridsquare == "FN31"
    assert w1aw.my_gridsquare == "LL75ra"
    assert w1aw.country == "United States"
    assert w1aw.qsl_rcvd == QslStatus.YES
    assert w1aw.timestamp == datetime(2024, 1, 15, 14, 30, tzinfo=UTC)


def test_adif_empty():
    """Test empty and header-only input."""
    assert load_adif("") == []
    assert load_adif("just a comment <ADIF_VER:5>3.1.4 <EOH>\n") == []


def test_interleaved_valid_and_invalid_records():
    """N valid records survive M broken ones, in file order."""
    records = []
    expected = []
    for i in range(10):
        call = f"K{i}ABC"
        records.append(f"<CALL:{len(call)}>{call}<QSO_DATE:8>20240704<TIME_ON:6>1200{i:02d}<EOR>")
        expected.append(call)
        # no QSO_DATE
        records.append("<CALL:4>N0NE<TIME_ON:6>120000<EOR>")
        # no CALL
        records.append("<QSO_DATE:8>20240704<EOR>")
    parsed = load_adif("<EOH>" + "\n".join(records))
    assert [q.call for q in parsed] == expected


def test_markers_are_case_insensitive():
    text = "header <eoh> <call:4>W1AW <qso_date:8>20240101 <eor> <Call:4>K1AB <Qso_Date:8>20240102 <Eor>"
    parsed = load_adif(text)
    assert [q.call for q in parsed] == ["W1AW", "K1AB"]


def test_strip_header_and_split():
    text = "<PROGRAMID:4>test<EOH><CALL:4>W1AW<EOR>\n\n<CALL:4>K1AB<eor>  \n"
    body = strip_header(text)
    assert body.startswith("<CALL:4>W1AW")
    assert split_records(body) == ["<CALL:4>W1AW", "<CALL:4>K1AB"]
    assert strip_header("<CALL:4>W1AW") == "<CALL:4>W1AW"


def test_iter_fields():
    fields = list(iter_fields("<call:4>W1AW <FREQ:6:N>14.074<BAD:x>oops<NAME:3>Bob"))
    assert fields == [
        AdifField("CALL", 4, "W1AW "),
        AdifField("FREQ", 6, "14.074"),
        AdifField("NAME", 3, "Bob"),
    ]
    assert fields[0].value == "W1AW"


def test_declared_length_shorter_than_data():
    """Only the declared number of characters is used."""
    q = parse_record("<CALL:4>W1AWXYZ <QSO_DATE:8>20240115123 <TIME_ON:4>1430")
    assert q.call == "W1AW"
    assert q.qso_date == "20240115"
    assert q.time_on == "1430"


def test_declared_length_longer_than_data_skips_field():
    q = parse_record("<CALL:4>W1AW<QSO_DATE:8>20240115<NAME:10>Bob<COMMENT:2>hi")
    assert q.name == ""
    assert q.comment == "hi"


def test_bad_length_skips_field_not_record():
    q = parse_record("<CALL:4>W1AW<QSO_DATE:8>20240115<NAME:-3>Bob<QTH:abc>Here<BAND:²>20m")
    assert q.call == "W1AW"
    assert q.name == ""
    assert q.qth == ""
    assert q.band == ""


def test_non_ascii_length_does_not_abort_log():
    text = (
        "<EOH><CALL:4>W1AW<QSO_DATE:8>20240115<NAME:²>Bo<EOR>"
        "<CALL:4>K1AB<QSO_DATE:8>20240116<EOR>"
    )
    qsos = load_adif(text)
    assert [q.call for q in qsos] == ["W1AW", "K1AB"]
    assert qsos[0].name == ""


def test_normalization():
    q = parse_record("<CALL:8>  w1aw  <QSO_DATE:8>20240115<NAME:7> Alice <QSL_RCVD:1>y<LOTW_QSL_RCVD:1>V")
    assert q.call == "W1AW"
    assert q.name == "Alice"
    assert q.qsl_rcvd == QslStatus.YES
    # Unknown codes fall back to UNKNOWN
    assert q.lotw_qsl_rcvd == QslStatus.UNKNOWN
    assert q.eqsl_qsl_rcvd == QslStatus.UNKNOWN


def test_unknown_fields_ignored():
    q = parse_record("<CALL:4>W1AW<QSO_DATE:8>20240115<APP_FOO_BAR:3>xyz<SUBMODE:3>FT4")
    assert q.call == "W1AW"


@pytest.mark.parametrize(
    "text",
    [
        "<QSO_DATE:8>20240115<TIME_ON:6>143000",
        "<CALL:4>W1AW<TIME_ON:6>143000",
        "<CALL:4>    <QSO_DATE:8>20240115",
        "",
    ],
)
def test_invalid_record(text):
    with pytest.raises(InvalidRecordError):
        parse_record(text)


def test_timestamp_roundtrip():
    q = parse_record("<CALL:4>W1AW<QSO_DATE:8>20240115<TIME_ON:6>143000")
    assert q.timestamp == datetime(2024, 1, 15, 14, 30, 0, tzinfo=UTC)
    assert q.format_date() == "2024-01-15"
    assert q.format_time() == "14:30"
    assert q.format_qso_time() == "2024-01-15 14:30:00 UTC"


@pytest.mark.parametrize(
    "date,time_on",
    [
        ("20240115", "1430"),  # HHMM only
        ("2024011", "143000"),
        ("20241315", "143000"),  # month 13
        ("20240230", "143000"),
        ("20240115", "246000"),
        ("2024O115", "143000"),
        ("", ""),
    ],
)
def test_malformed_timestamp(date, time_on):
    assert parse_timestamp(date, time_on) is None


def test_malformed_timestamp_keeps_record():
    q = parse_record("<CALL:4>W1AW<QSO_DATE:8>20240115<TIME_ON:4>1430")
    assert q.timestamp is None
    assert q.format_time() == "14:30"
    assert q.format_qso_time() == "20240115 1430 UTC"


def test_adif_parallel_processing():
    """Parallel parsing gives the same records in the same order."""
    records = []
    for i in range(1200):
        call = f"K{i:04d}"
        records.append(f"<CALL:{len(call)}>{call}<QSO_DATE:8>20240704<TIME_ON:6>123456<EOR>")
        if i % 7 == 0:
            records.append("<QSO_DATE:8>20240704<EOR>")
    text = "<ADIF_VER:3>3.1<EOH>" + "".join(records)

    parallel = load_adif_parallel(text, max_workers=4)
    assert len(parallel) == 1200
    assert [q.call for q in parallel] == [q.call for q in load_adif(text)]


def test_load_adif_file(adif_file):
    assert len(load_adif_file(adif_file)) == 4
    assert len(load_adif_file(adif_file, parallel=False)) == 4


def test_load_adif_file_missing(tmp_path):
    with pytest.raises(AdifReadError):
        load_adif_file(tmp_path / "missing.adi")
