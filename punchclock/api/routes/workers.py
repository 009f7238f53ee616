from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from punchclock.api.deps import db_session, ensure_self_or_staff, get_current_principal, require_roles
from punchclock.core.security import coerce_embedding, hash_password
from punchclock.db.models import Worker, WorkerEmbedding
from punchclock.schemas.auth import STAFF_ROLES, CurrentPrincipal
from punchclock.schemas.punch import normalize_rfid
from punchclock.schemas.worker import EmbeddingEnrollment, WorkerCreate, WorkerResponse, WorkerUpdate
from punchclock.services.encryption import embedding_crypto
from punchclock.services.matcher import get_matcher

router = APIRouter(prefix="/workers", tags=["workers"])
matcher_singleton = get_matcher()


def _get_worker_or_404(db: Session, worker_id: uuid.UUID) -> Worker:
    row = db.scalar(select(Worker).where(Worker.id == worker_id).options(selectinload(Worker.embeddings)))
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Worker not found.")
    return row


def _encrypt_embeddings(raw: list[list[float]]) -> list[WorkerEmbedding]:
    rows: list[WorkerEmbedding] = []
    for position, values in enumerate(raw):
        try:
            vector = coerce_embedding(values)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Embedding #{position}: {exc}",
            ) from exc
        rows.append(WorkerEmbedding(position=position, ciphertext=embedding_crypto.encrypt(vector)))
    return rows


def _commit_or_409(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email or RFID code is already assigned to another worker.",
        ) from exc


@router.get("", response_model=list[WorkerResponse])
def list_workers(
    include_inactive: bool = False,
    _principal: CurrentPrincipal = Depends(require_roles(*STAFF_ROLES)),
    db: Session = db_session(),
):
    query = select(Worker).options(selectinload(Worker.embeddings)).order_by(Worker.name)
    if not include_inactive:
        query = query.where(Worker.is_active.is_(True))
    return db.scalars(query).all()


@router.post("", response_model=WorkerResponse, status_code=status.HTTP_201_CREATED)
def create_worker(
    payload: WorkerCreate,
    _principal: CurrentPrincipal = Depends(require_roles("admin", "manager")),
    db: Session = db_session(),
):
    row = Worker(
        name=payload.name,
        email=payload.email,
        role=payload.role,
        rfid=payload.rfid,
        password_hash=hash_password(payload.password) if payload.password else None,
    )
    row.embeddings = _encrypt_embeddings(payload.embeddings)
    db.add(row)
    _commit_or_409(db)
    db.refresh(row)
    matcher_singleton.invalidate()
    return row


@router.get("/by-rfid/{code}", response_model=WorkerResponse)
def get_worker_by_rfid(
    code: str,
    _principal: CurrentPrincipal = Depends(require_roles("admin", "manager", "operator", "device")),
    db: Session = db_session(),
):
    try:
        rfid = normalize_rfid(code)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    row = db.scalar(select(Worker).where(Worker.rfid == rfid).options(selectinload(Worker.embeddings)))
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown RFID code.")
    return row


@router.get("/{worker_id}", response_model=WorkerResponse)
def get_worker(
    worker_id: uuid.UUID,
    principal: CurrentPrincipal = Depends(get_current_principal),
    db: Session = db_session(),
):
    ensure_self_or_staff(principal, worker_id)
    return _get_worker_or_404(db, worker_id)


@router.patch("/{worker_id}", response_model=WorkerResponse)
def update_worker(
    worker_id: uuid.UUID,
    payload: WorkerUpdate,
    _principal: CurrentPrincipal = Depends(require_roles("admin", "manager")),
    db: Session = db_session(),
):
    row = _get_worker_or_404(db, worker_id)
    changes = payload.model_dump(exclude_unset=True)
    password = changes.pop("password", None)
    for field, value in changes.items():
        setattr(row, field, value)
    if password:
        row.password_hash = hash_password(password)
    _commit_or_409(db)
    db.refresh(row)
    matcher_singleton.invalidate()
    return row


@router.put("/{worker_id}/embeddings", response_model=WorkerResponse)
def enroll_embeddings(
    worker_id: uuid.UUID,
    payload: EmbeddingEnrollment,
    _principal: CurrentPrincipal = Depends(require_roles("admin", "manager")),
    db: Session = db_session(),
):
    row = _get_worker_or_404(db, worker_id)
    replacements = _encrypt_embeddings(payload.embeddings)
    row.embeddings.clear()
    db.flush()
    row.embeddings.extend(replacements)
    db.commit()
    db.refresh(row)
    matcher_singleton.invalidate()
    return row


@router.delete("/{worker_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_worker(
    worker_id: uuid.UUID,
    _principal: CurrentPrincipal = Depends(require_roles("admin")),
    db: Session = db_session(),
):
    row = _get_worker_or_404(db, worker_id)
    db.delete(row)
    db.commit()
    matcher_singleton.invalidate()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
