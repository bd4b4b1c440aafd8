from __future__ import annotations
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Optional, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from homegym.common.config import Settings
from homegym.counter.rules import CATALOG, ExerciseId
from homegym.counter.session import RepSessionManager, SessionClosedError

logger = logging.getLogger(__name__)

MANAGER: Optional[RepSessionManager] = None
WS_CLIENTS: Set[WebSocket] = set()
_LOOP: Optional[asyncio.AbstractEventLoop] = None
# the loop only keeps weak references to tasks
_TASKS: Set[asyncio.Task] = set()


def ACTIVE_MANAGER() -> RepSessionManager:
    global MANAGER
    if MANAGER is None:
        MANAGER = RepSessionManager(Settings.from_env())
        MANAGER.set_event_sink(_sink)
    return MANAGER


# let the manager emit events to all WS clients, from the loop or a camera thread
def _sink(ev: dict):
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None
    if loop is not None:
        task = loop.create_task(broadcast(ev))
        _TASKS.add(task)
        task.add_done_callback(_TASKS.discard)
    elif _LOOP is not None and not _LOOP.is_closed():
        asyncio.run_coroutine_threadsafe(broadcast(ev), _LOOP)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    global _LOOP
    _LOOP = asyncio.get_running_loop()
    yield
    _LOOP = None


app = FastAPI(title="HomeGym rep counter", lifespan=lifespan)


@app.get("/favicon.ico")
async def favicon():
    return Response(status_code=204)


@app.get("/exercises")
async def exercises():
    return [
        {"id": ex.value, "name": info.display_name, "instructions": info.instructions}
        for ex, info in CATALOG.items()
    ]


@app.get("/sessions/current")
async def current():
    st = ACTIVE_MANAGER().status()
    return JSONResponse(asdict(st))


@app.post("/counter/start")
async def start(exercise: ExerciseId, camera: bool = False):
    m = ACTIVE_MANAGER()
    sid, status = m.start(exercise=exercise, camera=camera)
    return {"session_id": sid, "status": status, "state": m.status().state}


@app.post("/counter/tutorial/dismiss")
async def dismiss_tutorial():
    try:
        ACTIVE_MANAGER().dismiss_tutorial()
    except SessionClosedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return asdict(ACTIVE_MANAGER().status())


@app.post("/counter/countdown/finish")
async def finish_countdown():
    m = ACTIVE_MANAGER()
    if m.controller is None:
        raise HTTPException(status_code=409, detail="no active session")
    m.finish_countdown()
    return asdict(m.status())


@app.post("/counter/pause")
async def pause():
    m = ACTIVE_MANAGER()
    return {"session_id": m.pause(), "state": m.status().state}


@app.post("/counter/resume")
async def resume():
    m = ACTIVE_MANAGER()
    return {"session_id": m.resume(), "state": m.status().state}


@app.post("/counter/stop")
async def stop():
    try:
        summary = ACTIVE_MANAGER().stop()
    except SessionClosedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    out = asdict(summary)
    out["reason"] = summary.reason.value
    return out


@app.websocket("/ws/frames")
async def ws_frames(ws: WebSocket):
    await ws.accept()
    WS_CLIENTS.add(ws)
    m = ACTIVE_MANAGER()
    m.set_web_mode(True)
    await broadcast({"type": "trace", "msg": "ws: client connected"})
    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("ws: dropping non-JSON message")
                continue
            if not isinstance(data, dict) or data.get("type") != "frame":
                continue
            try:
                m.push_payload(data)
            except ValidationError as e:
                logger.warning("ws: malformed frame: %s", e.errors()[:1])
    except WebSocketDisconnect:
        pass
    finally:
        WS_CLIENTS.discard(ws)
        if not WS_CLIENTS:
            m.set_web_mode(False)
        await broadcast({"type": "trace", "msg": "ws closed"})


async def broadcast(obj: dict):
    dead = []
    for ws in list(WS_CLIENTS):
        try:
            await ws.send_text(json.dumps(obj))
        except Exception:
            logger.debug("ws: dropping dead client", exc_info=True)
            dead.append(ws)
    for d in dead:
        WS_CLIENTS.discard(d)
