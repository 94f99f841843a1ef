import asyncio
import logging
import time
from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy import text

router = APIRouter()
logger = logging.getLogger(__name__)

DB_CHECK_TIMEOUT_SECONDS = 2.0


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.head("/healthz")
async def healthz_head() -> Response:
    return Response(status_code=200)


async def _check_database(request: Request) -> dict[str, Any]:
    session_factory = getattr(request.app.state, "db_session_factory", None)
    started = time.perf_counter()
    if session_factory is None:
        ok, message = False, "session factory not configured"
    else:
        try:
            async with asyncio.timeout(DB_CHECK_TIMEOUT_SECONDS):
                async with session_factory() as session:
                    await session.execute(text("SELECT 1"))
            ok, message = True, "database reachable"
        except TimeoutError:
            ok, message = False, "database check timed out"
        except Exception as exc:  # noqa: BLE001
            logger.warning("readiness_db_check_failed", extra={"extra": {"error_type": type(exc).__name__}})
            ok, message = False, f"database check failed: {type(exc).__name__}"
    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    return {"name": "db", "ok": ok, "ms": elapsed_ms, "detail": {"message": message}}


@router.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    checks = [await _check_database(request)]
    ready = all(check["ok"] for check in checks)
    return JSONResponse(status_code=200 if ready else 503, content={"ok": ready, "checks": checks})
