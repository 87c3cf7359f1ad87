from __future__ import annotations

import logging
from io import BytesIO

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.responses import Response

from .config import load_settings
from .encoder import write_latest_frame
from .scheduler import CaptureScheduler
from .storage import load_state

GIF_MEDIA_TYPE = "image/gif"

app = FastAPI(title="Rolling GIF")
scheduler: CaptureScheduler | None = None


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )


def _require_scheduler() -> CaptureScheduler:
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler is not running")
    return scheduler


@app.on_event("startup")
async def startup_event() -> None:
    global scheduler
    settings = load_settings()
    configure_logging(settings.log_level)
    scheduler = CaptureScheduler(settings)
    scheduler.start()


@app.on_event("shutdown")
async def shutdown_event() -> None:
    if scheduler is not None:
        await scheduler.stop()


@app.get("/")
async def index():
    current = _require_scheduler()
    buffer = current.buffer
    state = load_state(current.settings.state_file)
    return {
        "frame_count": len(buffer),
        "capacity": buffer.capacity,
        "delay_ticks": buffer.delay,
        "test_mode": current.settings.test_mode,
        "connected": current.settings.test_mode or current.is_connected,
        "last_fetch_at": state["fetch"]["last_at"],
        "last_publish_at": state["publish"]["last_at"],
        "publish_count": state["publish"]["count"],
    }


@app.get("/animation.gif")
async def animation():
    current = _require_scheduler()
    if current.latest_animation is None:
        raise HTTPException(status_code=404, detail="No animation has been encoded yet")
    return Response(content=current.latest_animation, media_type=GIF_MEDIA_TYPE)


@app.get("/frames/latest.gif")
async def latest_frame():
    current = _require_scheduler()
    if len(current.buffer) == 0:
        raise HTTPException(status_code=404, detail="No frames captured yet")
    out = BytesIO()
    write_latest_frame(current.buffer, out)
    return Response(content=out.getvalue(), media_type=GIF_MEDIA_TYPE)


def run() -> None:
    uvicorn.run("gifroll.main:app", host="0.0.0.0", port=8000)
