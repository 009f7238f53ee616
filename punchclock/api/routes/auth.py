from __future__ import annotations

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from punchclock.api.deps import db_session
from punchclock.core.security import create_access_token, verify_password
from punchclock.db.models import User, Worker
from punchclock.schemas.auth import WORKER_ROLE, LoginRequest, TokenResponse, WorkerLoginRequest

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/token", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = db_session()):
    user = db.scalar(select(User).where(User.username == payload.username, User.is_active.is_(True)))
    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials.")

    token = create_access_token(subject=str(user.id), role=user.role)
    return TokenResponse(access_token=token, role=user.role)


@router.post("/worker-token", response_model=TokenResponse)
def worker_login(payload: WorkerLoginRequest, db: Session = db_session()):
    if payload.worker_id is not None:
        worker = db.get(Worker, payload.worker_id)
    else:
        worker = db.scalar(select(Worker).where(Worker.email == payload.email))

    if (
        worker is None
        or not worker.is_active
        or not worker.password_hash
        or not verify_password(payload.password, worker.password_hash)
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid worker ID or password.")

    token = create_access_token(subject=str(worker.id), role=WORKER_ROLE)
    return TokenResponse(access_token=token, role=WORKER_ROLE)
