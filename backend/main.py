import logging
import math
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import psycopg2
import psycopg2.extras
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from jose import JWTError, jwt
from pydantic import BaseModel

_project_root = Path(__file__).resolve().parents[1]
if str(_project_root) not in sys.path:
    sys.path.append(str(_project_root))

from backend import app_context  # noqa: E402
from backend.app.routes.subscriptions import router as subscriptions_router  # noqa: E402


load_dotenv()

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger("subscriptions.app")


def _connect_timeout_seconds(raw_value: str) -> int:
    try:
        seconds = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if seconds < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(seconds))


def _database_settings() -> Dict[str, Any]:
    return {
        "host": os.getenv("DB_HOST", "127.0.0.1"),
        "port": int(os.getenv("DB_PORT", "5432")),
        "dbname": os.getenv("DB_NAME", "subscriptions_db"),
        "user": os.getenv("DB_USER", "subs_user"),
        "password": os.getenv("DB_PASSWORD", "subs_pass"),
        "connect_timeout": _connect_timeout_seconds(os.getenv("DB_CONNECT_TIMEOUT", "5")),
    }


DB_SETTINGS = _database_settings()
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]


def connect():
    return psycopg2.connect(**DB_SETTINGS)


class SessionUser(BaseModel):
    """The signed-in caller as seen by the subscription routes."""

    id: int
    email: str
    role: str


def _load_session_user(user_id: int) -> Optional[SessionUser]:
    conn = connect()
    try:
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute("SELECT id, email, role FROM users WHERE id = %s", (user_id,))
            row = cur.fetchone()
    finally:
        conn.close()
    return SessionUser(**row) if row else None


def resolve_session_user(session_token: str) -> Optional[SessionUser]:
    """Decode the session JWT issued by the account service."""

    try:
        claims = jwt.decode(session_token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        user_id = int(claims["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        logger.debug("Rejected session token")
        return None
    return _load_session_user(user_id)


app_context.configure(connect=connect, resolve_session_user=resolve_session_user)

app = FastAPI(title="Subscriptions API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(subscriptions_router)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
