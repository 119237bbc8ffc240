from fastapi import APIRouter

from ..db import get_conn

router = APIRouter()

APP_NAME = "subledger-api"
APP_VERSION = "0.1.0"


@router.get("/health")
def health():
    with get_conn() as conn:
        conn.execute("SELECT 1").fetchone()
    return {"status": "ok"}


@router.get("/version")
def version():
    return {"app": APP_NAME, "version": APP_VERSION}
