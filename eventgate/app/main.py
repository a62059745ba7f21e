"""FastAPI entry-point for the eventgate PIN service."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from .config import Settings, get_settings
from .gate_manager import GateFlowError, GateManager, GateSession, SessionNotFound
from .logging_config import configure_logging

logger = logging.getLogger(__name__)

settings: Settings = get_settings()
configure_logging(settings.log_level, settings.log_directory, settings.log_retention_days)
app = FastAPI(title="eventgate", version="0.1.0")
manager = GateManager(settings=settings)


@app.exception_handler(GateFlowError)
async def gate_flow_exception_handler(request: Request, exc: GateFlowError) -> JSONResponse:
    logger.info("Gate request refused in %s: %s", request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.user_message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
    """Catch-all exception handler to prevent application crashes."""
    logger.exception(f"Unhandled exception in {request.url.path}: {exc}")
    return PlainTextResponse(
        "Internal server error",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors gracefully."""
    logger.warning(f"Validation error in {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Invalid request"},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup() -> None:
    await manager.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    try:
        await manager.stop()
    except Exception as e:
        logger.exception(f"Error during shutdown: {e}")


class ViewerRequest(BaseModel):
    viewer_id: str = Field(..., min_length=1)


class OrganizerRequest(BaseModel):
    organizer_id: str = Field(..., min_length=1)


class DigitRequest(BaseModel):
    digit: str = Field(..., pattern=r"^[0-9]$")


def _session_payload(session: GateSession) -> Dict[str, Any]:
    return {
        "session_id": session.session_id,
        "kind": session.kind,
        "event_id": session.event_id,
        "state": session.pad.snapshot().to_payload(),
    }


@app.get("/healthz")
async def healthcheck() -> JSONResponse:
    return JSONResponse({"status": "ok"})


@app.get("/events/{event_id}/access")
async def event_access(event_id: str, viewer_id: str = Query(..., min_length=1)) -> JSONResponse:
    return JSONResponse(await manager.access(event_id, viewer_id))


@app.post("/events/{event_id}/unlock")
async def open_unlock(event_id: str, payload: ViewerRequest) -> JSONResponse:
    """Mount a verifier unless the viewer can already see the event."""
    session = await manager.open_verifier(event_id, payload.viewer_id)
    if session is None:
        return JSONResponse({"status": "unlocked", "event_id": event_id})
    return JSONResponse(
        {"status": "pin_required", **_session_payload(session)},
        status_code=status.HTTP_201_CREATED,
    )


@app.post("/events/{event_id}/pin")
async def open_enroll(event_id: str, payload: OrganizerRequest) -> JSONResponse:
    session = await manager.open_enroller(event_id, payload.organizer_id)
    return JSONResponse(_session_payload(session), status_code=status.HTTP_201_CREATED)


@app.delete("/events/{event_id}/pin")
async def remove_pin(event_id: str, organizer_id: str = Query(..., min_length=1)) -> JSONResponse:
    await manager.remove_pin(event_id, organizer_id)
    return JSONResponse({"status": "public", "event_id": event_id})


@app.get("/sessions/{session_id}")
async def session_state(session_id: str) -> JSONResponse:
    return JSONResponse(manager.snapshot(session_id).to_payload())


@app.post("/sessions/{session_id}/digit")
async def press_digit(session_id: str, payload: DigitRequest) -> JSONResponse:
    return JSONResponse(manager.press_digit(session_id, payload.digit).to_payload())


@app.post("/sessions/{session_id}/delete")
async def press_delete(session_id: str) -> JSONResponse:
    return JSONResponse(manager.press_delete(session_id).to_payload())


@app.post("/sessions/{session_id}/close")
async def close_session(session_id: str) -> JSONResponse:
    manager.close_session(session_id)
    return JSONResponse({"status": "closed", "session_id": session_id})


@app.websocket("/ws/sessions/{session_id}")
async def session_socket(ws: WebSocket, session_id: str) -> None:
    await ws.accept()
    try:
        queue = manager.register_ui(session_id)
    except SessionNotFound:
        await ws.close(code=4404)
        return
    try:
        while True:
            try:
                event = await queue.get()
            except asyncio.CancelledError:
                break  # Clean shutdown

            try:
                await ws.send_json(event.to_payload())
            except Exception as e:
                logger.debug(f"WebSocket send failed (client disconnected): {e}")
                break

            if event.type == "closed":
                break
    except WebSocketDisconnect:
        pass
    except asyncio.CancelledError:
        pass  # Clean shutdown
    except Exception as e:
        logger.error(f"Unexpected error in session websocket: {e}")
    finally:
        manager.unregister_ui(session_id, queue)
        try:
            await ws.close()
        except Exception:
            pass
