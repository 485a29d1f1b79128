import logging
import os
import threading
import time

import pytest

from qsl_logbook.errors import AdifReadError
from qsl_logbook.reloader import ReloadingLogbook


def _adif(calls):
    records = "".join(
        f"<CALL:{len(c)}>{c}<QSO_DATE:8>20240101<TIME_ON:6>1200{i % 60:02d}<EOR>\n"
        for i, c in enumerate(calls)
    )
    return "<EOH>\n" + records


def _write_atomic(path, text):
    tmp = path.with_suffix(".tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)


def test_initial_load(adif_file):
    reloader = ReloadingLogbook(adif_file)
    assert len(reloader.current()) == 4


def test_initial_load_missing_file(tmp_path):
    with pytest.raises(AdifReadError):
        ReloadingLogbook(tmp_path / "missing.adi")


def test_reload_swaps_snapshot(tmp_path):
    path = tmp_path / "log.adi"
    _write_atomic(path, _adif(["W1AW"]))
    reloader = ReloadingLogbook(path)
    before = reloader.current()

    _write_atomic(path, _adif(["W1AW", "K1ABC"]))
    after = reloader.reload()

    assert reloader.current() is after
    assert len(after) == 2
    # readers holding the old snapshot are unaffected
    assert len(before) == 1


def test_failed_reload_keeps_previous(tmp_path):
    path = tmp_path / "log.adi"
    _write_atomic(path, _adif(["W1AW", "K1ABC"]))
    reloader = ReloadingLogbook(path)
    before = reloader.current()

    path.unlink()
    with pytest.raises(AdifReadError):
        reloader.reload()

    assert reloader.current() is before
    assert [q.call for q in reloader.current()] == ["W1AW", "K1ABC"]


def test_readers_never_see_partial_snapshot(tmp_path):
    small = ["W1AW", "K1ABC", "G0XYZ"]
    large = [f"K{i}AA" for i in range(200)]
    path = tmp_path / "log.adi"
    _write_atomic(path, _adif(small))
    reloader = ReloadingLogbook(path)

    stop = threading.Event()
    seen = set()
    errors = []

    def reader():
        while not stop.is_set():
            calls = tuple(q.call for q in reloader.current())
            if calls not in (tuple(small), tuple(large)):
                errors.append(len(calls))
            seen.add(len(calls))

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for t in readers:
        t.start()
    try:
        for i in range(20):
            _write_atomic(path, _adif(large if i % 2 == 0 else small))
            reloader.reload()
    finally:
        stop.set()
        for t in readers:
            t.join()

    assert errors == []
    assert seen <= {len(small), len(large)}


def test_concurrent_reloads(tmp_path):
    path = tmp_path / "log.adi"
    _write_atomic(path, _adif(["W1AW"]))
    reloader = ReloadingLogbook(path)

    threads = [threading.Thread(target=reloader.reload) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert [q.call for q in reloader.current()] == ["W1AW"]


def test_background_reloading(tmp_path):
    path = tmp_path / "log.adi"
    _write_atomic(path, _adif(["W1AW"]))

    with ReloadingLogbook(path) as reloader:
        reloader.start(0.05)
        assert reloader.running
        _write_atomic(path, _adif(["W1AW", "K1ABC"]))

        deadline = time.monotonic() + 5
        while len(reloader.current()) != 2 and time.monotonic() < deadline:
            time.sleep(0.02)
        assert len(reloader.current()) == 2

        # a failing tick is logged and the data keeps being served
        path.unlink()
        time.sleep(0.2)
        assert reloader.running
        assert len(reloader.current()) == 2

    assert not reloader.running


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.02)
    return predicate()


def test_background_reloading_survives_unexpected_errors(tmp_path, monkeypatch):
    """A tick that fails with something other than a read error must not kill the thread."""
    path = tmp_path / "log.adi"
    _write_atomic(path, _adif(["W1AW"]))
    reloader = ReloadingLogbook(path)

    real_load = reloader._load
    failures = []

    def flaky_load():
        if not failures:
            failures.append(1)
            raise ValueError("corrupt record")
        return real_load()

    monkeypatch.setattr(reloader, "_load", flaky_load)
    with reloader:
        reloader.start(0.05)
        assert _wait_for(lambda: failures)
        _write_atomic(path, _adif(["W1AW", "K1ABC"]))

        assert _wait_for(lambda: len(reloader.current()) == 2)
        assert reloader.running


def test_failed_tick_logged_once(tmp_path, caplog):
    path = tmp_path / "log.adi"
    _write_atomic(path, _adif(["W1AW"]))
    reloader = ReloadingLogbook(path)
    path.unlink()

    with caplog.at_level(logging.INFO, logger="qsl_logbook.reloader"):
        with reloader:
            reloader.start(0.05)
            assert _wait_for(lambda: any(r.levelno >= logging.WARNING for r in caplog.records))

    problems = [r for r in caplog.records if r.levelno >= logging.WARNING]
    # one WARNING per tick, nothing at ERROR
    assert all(r.levelno == logging.WARNING for r in problems)
    assert all("Failed to reload" in r.getMessage() for r in problems)


def test_start_rejects_bad_interval(adif_file):
    reloader = ReloadingLogbook(adif_file)
    with pytest.raises(ValueError):
        reloader.start(0)
