"""
FastAPI Backend — Survey Draw API v1.

Presentation surface over one in-process DrawSession. The draw engine
itself exposes no network endpoints; this module only translates HTTP
to session calls and named errors to status codes.

Endpoints:
  PUT    /roster                         load roster rows
  GET    /stats                          department stats summary
  GET    /diagnostics                    draw readiness warnings
  PUT    /sub-departments                opt-in selection (defaults kept)
  GET    /draw-pool                      current pool view
  POST   /draw                           full draw
  DELETE /draw/employees                 remove one selected employee
  POST   /draw/supplement                refill shortfalls
  POST   /draw/save                      persist as history record
  GET    /history                        newest first
  PATCH  /history/{id}/remove-employee   edit a stored record
  DELETE /history/{id}                   delete a stored record
  POST   /reset                          forget roster + results
  GET    /metrics                        session metrics
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv

env_path = os.path.join(os.path.dirname(__file__), ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

# Add project root to path for kernel imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from survey_kernel.errors import (
    EmptyDrawPoolError,
    NoEligibleEmployeesError,
    NotLoadedError,
    RosterValidationError,
)
from survey_kernel.invariants import InvariantViolationError
from survey_kernel.rng import DeterministicRNG
from survey_runtime.config import RuntimeConfig
from survey_runtime.file_history import FileHistoryBackend
from survey_runtime.history_repository import HistoryRepository
from survey_runtime.history_store import HistoryStore, HistoryStoreError
from survey_runtime.session import DrawSession, SessionStateError

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

CONFIG = RuntimeConfig.from_env()

logging.basicConfig(
    level=getattr(logging, CONFIG.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Survey Draw API",
    version="1.0.0",
    description="Weighted satisfaction-survey participant draw",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[CONFIG.frontend_url, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RosterRequest(BaseModel):
    rows: List[Dict[str, Any]]


class SubDepartmentRequest(BaseModel):
    selected: List[str] = Field(default_factory=list)


class DrawRequest(BaseModel):
    excluded: List[str] = Field(default_factory=list)


class EmployeeRef(BaseModel):
    name: str
    department: str


class SaveRequest(BaseModel):
    year: Optional[int] = None
    quarter: Optional[Union[int, str]] = None


# ---------------------------------------------------------------------------
# Session wiring
# ---------------------------------------------------------------------------


def _build_history_store(config: RuntimeConfig) -> HistoryStore:
    primary = None
    try:
        if config.database_url:
            from backend.postgres_history_repository import PostgresHistoryBackend
            primary = PostgresHistoryBackend(config.database_url)
        else:
            primary = FileHistoryBackend(config.history_dir)
    except Exception as exc:
        logger.warning("Primary history backend unavailable, cache only: %s", exc)
        primary = None

    cache = HistoryRepository(config.cache_db)
    return HistoryStore(primary=primary, cache=cache, cap=config.history_cap)


_SESSION: Optional[DrawSession] = None


def get_session() -> DrawSession:
    global _SESSION
    if _SESSION is None:
        _SESSION = DrawSession(
            history_store=_build_history_store(CONFIG),
            rng=DeterministicRNG(CONFIG.draw_seed),
        )
    return _SESSION


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _to_http(exc: Exception) -> Exception:
    """Map named errors to HTTPException; anything else is re-raised as is."""
    if isinstance(exc, (RosterValidationError, NoEligibleEmployeesError, EmptyDrawPoolError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, (NotLoadedError, SessionStateError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, HistoryStoreError):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, InvariantViolationError):
        logger.error("Draw invariant violated: %s", exc)
        return HTTPException(status_code=500, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    return exc


def _results_payload(session: DrawSession) -> dict:
    return {
        "phase": session.phase.value,
        "results": [r.to_dict() for r in session.results],
        "totalSelected": sum(len(r.employees) for r in session.results),
        "removed": [e.to_dict() for e in session.removed],
        "shortfalls": session.shortfalls(),
        "needsSupplement": session.needs_supplement,
    }


# ---------------------------------------------------------------------------
# Roster + pool
# ---------------------------------------------------------------------------


@app.put("/roster")
def put_roster(req: RosterRequest, session: DrawSession = Depends(get_session)):
    try:
        summary = session.load_roster(req.rows)
    except Exception as exc:
        raise _to_http(exc)
    return summary.to_dict()


@app.get("/stats")
def get_stats(session: DrawSession = Depends(get_session)):
    try:
        return session.get_stats_summary().to_dict()
    except Exception as exc:
        raise _to_http(exc)


@app.get("/diagnostics")
def get_diagnostics(session: DrawSession = Depends(get_session)):
    try:
        return session.get_diagnostics()
    except Exception as exc:
        raise _to_http(exc)


@app.put("/sub-departments")
def put_sub_departments(
    req: SubDepartmentRequest, session: DrawSession = Depends(get_session),
):
    return {"selected": session.set_selected_sub_departments(req.selected)}


@app.get("/draw-pool")
def get_draw_pool(session: DrawSession = Depends(get_session)):
    try:
        pool = session.get_draw_pool()
    except Exception as exc:
        raise _to_http(exc)
    return {
        "selectedSubDepartments": session.selected_sub_departments,
        "departments": {dept: entry.to_dict() for dept, entry in pool.items()},
    }


# ---------------------------------------------------------------------------
# Draw
# ---------------------------------------------------------------------------


@app.post("/draw")
def post_draw(req: DrawRequest, session: DrawSession = Depends(get_session)):
    try:
        results = session.perform_draw(req.excluded)
    except Exception as exc:
        raise _to_http(exc)
    if results is None:
        raise HTTPException(status_code=409, detail="A draw is already in progress")
    return _results_payload(session)


@app.delete("/draw/employees")
def delete_draw_employee(req: EmployeeRef, session: DrawSession = Depends(get_session)):
    try:
        removed = session.remove_employee(req.name, req.department)
    except Exception as exc:
        raise _to_http(exc)
    if removed is None:
        raise HTTPException(
            status_code=404,
            detail=f"{req.name!r} is not selected in {req.department!r}",
        )
    return _results_payload(session)


@app.post("/draw/supplement")
def post_supplement(session: DrawSession = Depends(get_session)):
    try:
        supplements = session.supplement_draw()
    except Exception as exc:
        raise _to_http(exc)
    if supplements is None:
        raise HTTPException(status_code=409, detail="A draw is already in progress")
    payload = _results_payload(session)
    payload["supplements"] = [s.to_dict() for s in supplements]
    return payload


@app.post("/draw/save")
def post_save(req: SaveRequest, session: DrawSession = Depends(get_session)):
    try:
        record = session.save(year=req.year, quarter=req.quarter)
    except Exception as exc:
        raise _to_http(exc)
    if record is None:
        raise HTTPException(status_code=409, detail="A draw or save is already in progress")
    return record


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@app.get("/history")
def get_history(session: DrawSession = Depends(get_session)):
    try:
        return {"history": session.get_history()}
    except Exception as exc:
        raise _to_http(exc)


@app.patch("/history/{record_id}/remove-employee")
def patch_history_remove_employee(
    record_id: str, req: EmployeeRef, session: DrawSession = Depends(get_session),
):
    try:
        updated = session.edit_history_remove_employee(record_id, req.name, req.department)
    except Exception as exc:
        raise _to_http(exc)
    if updated is None:
        raise HTTPException(status_code=404, detail=f"History record {record_id!r} not found")
    return updated


@app.delete("/history/{record_id}")
def delete_history(record_id: str, session: DrawSession = Depends(get_session)):
    try:
        deleted = session.delete_history_record(record_id)
    except Exception as exc:
        raise _to_http(exc)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"History record {record_id!r} not found")
    return {"deleted": record_id}


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@app.post("/reset")
def post_reset(session: DrawSession = Depends(get_session)):
    session.reset()
    return {"phase": session.phase.value}


@app.get("/metrics")
def get_metrics(session: DrawSession = Depends(get_session)):
    return session.get_metrics().to_dict()
