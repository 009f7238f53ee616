from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

from punchclock.api.deps import principal_from_token
from punchclock.api.routes import (
    attendance,
    auth,
    devices,
    events,
    health,
    punches,
    recognitions,
    workers,
)
from punchclock.api.routes import settings as settings_routes
from punchclock.core.clock import attendance_zone
from punchclock.core.config import get_settings
from punchclock.core.logging import configure_logging
from punchclock.core.security import hash_password
from punchclock.db.base import Base
from punchclock.db.models import User
from punchclock.db.session import SessionLocal, engine
from punchclock.services import geofence
from punchclock.ws.manager import punch_feed

settings = get_settings()
configure_logging(settings.log_level, settings.log_dir)
logger = logging.getLogger("punchclock.app")


def bootstrap_defaults() -> None:
    attendance_zone(settings.attendance_timezone)
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        admin = db.scalar(select(User).where(User.username == settings.bootstrap_admin_username))
        if admin is None:
            admin = User(
                username=settings.bootstrap_admin_username,
                password_hash=hash_password(settings.bootstrap_admin_password),
                role=settings.bootstrap_admin_role,
                is_active=True,
            )
            db.add(admin)
            logger.info("Created bootstrap admin user '%s'.", settings.bootstrap_admin_username)
        geofence.load_config(db, settings)
        db.commit()


@asynccontextmanager
async def lifespan(app: FastAPI):
    bootstrap_defaults()
    yield


app = FastAPI(title=settings.app_name, version="1.0.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix)
app.include_router(auth.router, prefix=settings.api_prefix)
app.include_router(workers.router, prefix=settings.api_prefix)
app.include_router(devices.router, prefix=settings.api_prefix)
app.include_router(recognitions.router, prefix=settings.api_prefix)
app.include_router(punches.router, prefix=settings.api_prefix)
app.include_router(attendance.router, prefix=settings.api_prefix)
app.include_router(events.router, prefix=settings.api_prefix)
app.include_router(settings_routes.router, prefix=settings.api_prefix)


@app.websocket("/ws/punches")
async def punches_socket(websocket: WebSocket):
    principal = principal_from_token(websocket.query_params.get("token"))
    if principal is None:
        await websocket.close(code=4401)
        return

    await punch_feed.connect(websocket, principal)
    try:
        while True:
            message = await websocket.receive_text()
            if message.lower() == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        await punch_feed.disconnect(websocket)
