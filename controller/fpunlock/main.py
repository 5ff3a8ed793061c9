"""FastAPI entry-point for the fingerprint unlock controller."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from .config import Settings, get_settings
from .logging_config import configure_logging
from .session_manager import SessionManager

logger = logging.getLogger(__name__)

settings: Settings = get_settings()
configure_logging(
    settings.log_level,
    settings.log_directory,
    settings.log_retention_days,
    logger_levels=settings.logger_levels,
)
app = FastAPI(title="fpunlock-controller", version="0.1.0")
manager = SessionManager(settings=settings)


class ActivityRequest(BaseModel):
    force: bool = False


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
    """Catch-all exception handler to prevent application crashes."""
    logger.exception("Unhandled exception in %s: %s", request.url.path, exc)
    return PlainTextResponse(
        f"Internal server error: {str(exc)}",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Validation error in %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)},
    )


@app.on_event("startup")
async def on_startup() -> None:
    try:
        await manager.start()
        logger.info("Application started successfully")
    except Exception as e:
        logger.exception("Failed to start fingerprint session: %s", e)
        logger.error("Application startup failed - fingerprint unlock may not work")
        # Don't re-raise - the password path must keep working


@app.on_event("shutdown")
async def on_shutdown() -> None:
    try:
        await manager.stop()
        logger.info("Application shutdown complete")
    except Exception as e:
        logger.exception("Error during shutdown: %s", e)


@app.get("/healthz")
async def healthcheck() -> JSONResponse:
    return JSONResponse({"status": "ok", "phase": manager.phase.value})


@app.get("/status")
async def session_status() -> Dict[str, Any]:
    return manager.snapshot()


@app.post("/poll")
async def poll_session() -> Dict[str, Any]:
    authenticated = await manager.poll()
    return {
        "authenticated": authenticated,
        "phase": manager.phase.value,
        "status": manager.status,
        "driver_status": manager.driver_status,
    }


@app.post("/activity")
async def report_activity(request: ActivityRequest) -> Dict[str, Any]:
    manager.notify_activity(force=request.force)
    return {"status": "ok", "idle_restart": manager.idle_restart_request.name.lower()}


@app.post("/reenable")
async def reenable_session() -> Dict[str, Any]:
    connected = await manager.reenable()
    return {"status": "ok" if connected else "unavailable", "phase": manager.phase.value}


@app.websocket("/ws/ui")
async def ui_socket(ws: WebSocket) -> None:
    await ws.accept()
    queue = manager.register_ui()
    try:
        while True:
            try:
                event = await queue.get()
            except asyncio.CancelledError:
                break

            payload = {
                "type": event.type,
                "phase": event.phase.value,
                "data": event.data,
            }
            try:
                await ws.send_json(payload)
            except Exception as e:
                logger.debug("WebSocket send failed (client disconnected): %s", e)
                break
    except WebSocketDisconnect:
        pass
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error("Unexpected error in UI websocket: %s", e)
    finally:
        manager.unregister_ui(queue)
        try:
            await ws.close()
        except Exception:
            pass
