"""HTTP API for the QSL lookup site.

Routes:
- GET  /              home page data (counts, latest QSOs, hall of fame)
- GET  /api/qrz       latest QSOs and hall of fame for embedding on QRZ.com
- POST /api/search    find a QSO by callsign and UTC date/time (form or JSON), redirect to it
- GET  /{call}-{unix} one QSO plus every QSO with that station
- GET  /{call}-{unix}.png  the QSO map, rendered on first request

Every request reads the snapshot current at that moment, so a reload in the
background never affects a request already in progress.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import quote

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse
from sqlmodel import SQLModel

from .config import APP_NAME, Settings
from .errors import MapError
from .logbook import Logbook, compute_summary, normalize_call
from .maps import MapConfig, distance_km, map_file_name, render_map
from .models import QSO
from .reloader import ReloadingLogbook

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("qsl_logbook.access")
lookup_logger = logging.getLogger("qsl_logbook.lookups")

MAP_CONFIG = MapConfig(width=600, height=400, zoom=0)


class SearchRequest(SQLModel):
    """Lookup form: callsign plus the UTC date and time of the contact."""

    callsign: Optional[str] = None
    year: Optional[str] = None
    month: Optional[str] = None
    day: Optional[str] = None
    hour: Optional[str] = None
    minute: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "SearchRequest":
        """Build from form or JSON fields; numbers are taken as their text."""
        if not isinstance(payload, Mapping):
            payload = {}
        return cls(
            **{
                name: str(payload[name])
                for name in cls.model_fields
                if payload.get(name) is not None
            }
        )


def qso_to_dict(q: QSO) -> Dict[str, Any]:
    data = q.model_dump(mode="json")
    data["date"] = q.format_date()
    data["time"] = q.format_time()
    data["flag"] = q.flag_code()
    data["unix"] = q.unix_time()
    data["url"] = qso_url(q.call, q.unix_time())
    return data


def qso_url(call: str, unix_time: int) -> str:
    return f"/{quote(call, safe='')}-{unix_time}"


def split_qso_path(path: str) -> Optional[Tuple[str, int]]:
    """Split "<call>-<unix>" on the last dash; None if it doesn't parse."""
    call, sep, stamp = path.rpartition("-")
    if not sep or not call:
        return None
    try:
        unix_time = int(stamp)
        datetime.fromtimestamp(unix_time, UTC)
    except (ValueError, OverflowError, OSError):
        return None
    return call.upper(), unix_time


def _home_data(logbook: Logbook) -> Dict[str, Any]:
    summary = compute_summary(logbook)
    latest_at = summary["latest_qso_at"]
    return {
        "total_qsos": summary["total_qsos"],
        "unique_countries": summary["unique_countries"],
        "latest_qsos": [qso_to_dict(q) for q in summary["latest_qsos"]],
        "paper_qsl_hall_of_fame": [qso_to_dict(q) for q in summary["paper_qsl_hall_of_fame"]],
        "latest_qso_date": summary["latest_qso_date"],
        "latest_qso_at": latest_at.isoformat() if latest_at else None,
        "loaded_at": logbook.loaded_at.isoformat(),
    }


def _parse_search_time(req: SearchRequest) -> datetime:
    """Build the UTC search time; raises ValueError on bad values."""
    return datetime(
        int(req.year.strip()),  # type: ignore[union-attr]
        int(req.month.strip()),  # type: ignore[union-attr]
        int(req.day.strip()),  # type: ignore[union-attr]
        int(req.hour.strip()),  # type: ignore[union-attr]
        int(req.minute.strip()),  # type: ignore[union-attr]
        tzinfo=UTC,
    )


def _ensure_map(maps_dir: Path, file_name: str, my_grid: str, their_grid: str) -> Path:
    """Render a map into the cache unless it is already there."""
    path = maps_dir / file_name
    if not path.exists():
        render_map(my_grid, their_grid, path, MAP_CONFIG)
    return path


def _render_in_background(maps_dir: Path, file_name: str, my_grid: str, their_grid: str) -> None:
    try:
        _ensure_map(maps_dir, file_name, my_grid, their_grid)
    except MapError as e:
        logger.warning("Failed to generate map %s: %s", file_name, e)


def create_app(
    reloader: ReloadingLogbook,
    settings: Optional[Settings] = None,
    start_reloading: bool = True,
) -> FastAPI:
    """Build the FastAPI app serving `reloader`'s current logbook."""
    settings = settings or Settings()
    maps_dir = settings.resolved_maps_dir()
    tolerance = settings.search_tolerance

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_reloading:
            reloader.start(settings.reload_interval)
        yield
        reloader.stop()

    app = FastAPI(title=APP_NAME, lifespan=lifespan)
    app.state.reloader = reloader

    def current() -> Logbook:
        return reloader.current()

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        access_logger.info(
            "%s %s %s %s - %.1fms",
            request.method,
            request.url.path,
            request.client.host if request.client else "-",
            response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response

    @app.get("/")
    def home() -> Dict[str, Any]:
        return _home_data(current())

    @app.get("/api/summary")
    def summary() -> Dict[str, Any]:
        return _home_data(current())

    @app.get("/api/qrz")
    def qrz() -> Dict[str, Any]:
        logbook = current()
        return {
            "latest_qsos": [qso_to_dict(q) for q in logbook.latest()],
            "paper_qsl_hall_of_fame": [qso_to_dict(q) for q in logbook.paper_qsl_hall_of_fame()],
        }

    @app.post("/api/search")
    async def search(request: Request):
        if request.headers.get("content-type", "").startswith("application/json"):
            try:
                payload = await request.json()
            except ValueError:
                return JSONResponse({"error": "Invalid request body"}, status_code=400)
        else:
            payload = await request.form()
        req = SearchRequest.from_payload(payload)

        logbook = current()
        callsign = normalize_call(req.callsign)
        if not callsign:
            return JSONResponse({"error": "Call sign is required"}, status_code=400)

        parts = (req.year, req.month, req.day, req.hour, req.minute)
        if any(not (p or "").strip() for p in parts):
            return JSONResponse({"error": "All date and time fields are required"}, status_code=400)

        try:
            when = _parse_search_time(req)
        except ValueError:
            return JSONResponse({"error": "Invalid date and time values"}, status_code=400)

        qso = logbook.search(callsign, when, tolerance)
        lookup_logger.info(
            "QSO_SEARCH %s %s %s - %s",
            callsign,
            when.strftime("%Y-%m-%d %H:%M"),
            request.client.host if request.client else "-",
            "SUCCESS" if qso else "NOT_FOUND",
        )
        if qso is None:
            return JSONResponse(
                {"error": f"No QSO found for {callsign} around {when:%Y-%m-%d %H:%M} UTC"},
                status_code=404,
            )
        return RedirectResponse(qso_url(qso.call, qso.unix_time()), status_code=302)

    # Map images must be registered before the catch-all QSO route
    @app.get("/{path:path}.png")
    def qso_map(path: str):
        parsed = split_qso_path(path)
        if parsed is None:
            raise HTTPException(status_code=404)
        call, stamp = parsed
        file_name = map_file_name(call, stamp)
        map_path = maps_dir / file_name

        if not map_path.exists():
            qso = current().search(call, datetime.fromtimestamp(stamp, UTC), tolerance)
            if qso is None or not qso.has_grids():
                raise HTTPException(status_code=404)
            try:
                _ensure_map(maps_dir, file_name, qso.my_gridsquare, qso.gridsquare)
            except MapError as e:
                logger.error("Failed to generate map for %s: %s", file_name, e)
                raise HTTPException(status_code=500, detail="map rendering failed") from e

        return FileResponse(map_path, media_type="image/png")

    @app.get("/{path:path}")
    def qso_page(path: str, background_tasks: BackgroundTasks):
        parsed = split_qso_path(path)
        if parsed is None:
            return RedirectResponse("/", status_code=302)
        call, stamp = parsed

        logbook = current()
        qso = logbook.search(call, datetime.fromtimestamp(stamp, UTC), tolerance)
        if qso is None:
            return RedirectResponse("/", status_code=302)

        map_url = ""
        distance: Optional[float] = None
        if qso.has_grids():
            map_url = f"{qso_url(call, stamp)}.png"
            try:
                distance = round(distance_km(qso.my_gridsquare, qso.gridsquare), 1)
            except MapError as e:
                logger.warning("Cannot compute distance for %s: %s", call, e)
            background_tasks.add_task(
                _render_in_background,
                maps_dir,
                map_file_name(call, stamp),
                qso.my_gridsquare,
                qso.gridsquare,
            )

        return {
            "callsign": call,
            "qso": qso_to_dict(qso),
            "all_qsos": [qso_to_dict(q) for q in logbook.by_callsign(call)],
            "map_url": map_url,
            "distance_km": distance,
        }

    return app
