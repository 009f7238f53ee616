from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Iterable

import numpy as np
from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import get_settings

# New hashes use pbkdf2; bcrypt hashes imported from older installs still verify.
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(subject: str, role: str, device_id: str | None = None) -> str:
    settings = get_settings()
    expires = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_minutes)
    payload = {
        "sub": subject,
        "role": role,
        "device_id": device_id,
        "exp": expires,
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def coerce_embedding(values: Iterable[float], dim: int | None = None) -> np.ndarray:
    """Validate a face descriptor without normalising it.

    Descriptors are compared by raw Euclidean distance, so unit-normalising
    here would silently change what the match threshold means.
    """
    expected = dim if dim is not None else get_settings().embedding_dim
    vector = np.asarray(list(values), dtype=np.float32)
    if vector.ndim != 1:
        raise ValueError("Embedding must be a 1D vector.")
    if vector.size != expected:
        raise ValueError(f"Embedding must contain exactly {expected} values.")
    if not all(math.isfinite(float(v)) for v in vector):
        raise ValueError("Embedding contains non-finite values.")
    return vector


def safe_decode_token(token: str) -> dict | None:
    try:
        return decode_access_token(token)
    except JWTError:
        return None
