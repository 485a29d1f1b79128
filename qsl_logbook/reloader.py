"""Keeps the served Logbook in sync with the ADIF file on disk.

`ReloadingLogbook` owns the current snapshot. A reload parses the file into a
brand new Logbook and only then swaps the reference, so readers calling
`current()` always get a complete snapshot, old or new. A failed reload keeps
the previous snapshot in place.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Union

from .errors import AdifReadError
from .logbook import Logbook

logger = logging.getLogger(__name__)

DEFAULT_RELOAD_INTERVAL = 300.0


class ReloadingLogbook:
    """Thread-safe holder of the current Logbook with periodic reloading.

    The initial load happens in the constructor and raises AdifReadError if the
    file cannot be read.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._reload_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._logbook: Logbook = self._load()
        logger.info("Loaded %d QSOs from %s", len(self._logbook), self.path)

    def _load(self) -> Logbook:
        return Logbook.from_file(self.path)

    def current(self) -> Logbook:
        """Return whichever snapshot is current right now."""
        return self._logbook

    def reload(self) -> Logbook:
        """Re-read the ADIF file and publish the result.

        Reloads are serialized; readers are never blocked. On failure the old
        snapshot stays current and the error propagates (AdifReadError when the
        file cannot be read).
        """
        with self._reload_lock:
            logbook = self._load()
            self._logbook = logbook
        logger.info("Reloaded %d QSOs from %s", len(logbook), self.path)
        return logbook

    def start(self, interval: float = DEFAULT_RELOAD_INTERVAL) -> None:
        """Start reloading every `interval` seconds in a daemon thread."""
        if interval <= 0:
            raise ValueError("reload interval must be positive")
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, args=(interval,), name="adif-reloader", daemon=True
        )
        self._thread.start()
        logger.info("Started ADIF file reloading every %ss", interval)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the reload thread, if running."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self, interval: float) -> None:
        # Event.wait doubles as the ticker and the stop signal
        while not self._stop.wait(interval):
            try:
                self.reload()
            except AdifReadError as e:
                logger.warning(
                    "Failed to reload %s, keeping %d QSOs: %s", self.path, len(self._logbook), e
                )
            except Exception:
                logger.exception("Unexpected error reloading %s, keeping %d QSOs",
                                 self.path, len(self._logbook))

    def __enter__(self) -> "ReloadingLogbook":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
