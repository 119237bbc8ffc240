from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from ..db import ConnectionProvider
from ..config import get_settings
from ..domain.errors import (
    InfrastructureFailure,
    NotFoundError,
    OverlapRejected,
    SubscriptionError,
    ValidationError,
)
from ..domain.subscription import Subscription
from ..logs import LogContext
from ..services.subscription_svc import SubscriptionService
from .dates import format_month, parse_month, parse_month_opt

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


class SubscriptionBody(BaseModel):
    id: UUID
    name: str = Field(min_length=1)
    cost: int = Field(ge=0)
    date_start: str  # MM-YYYY
    date_end: Optional[str] = None  # MM-YYYY，空表示仍在订阅


def build_service() -> SubscriptionService:
    cfg = get_settings()
    return SubscriptionService(ConnectionProvider(busy_timeout_s=cfg["busy_timeout_s"]))


def get_service(request: Request) -> SubscriptionService:
    # lifespan 未运行（如直接 TestClient(app)）时按需创建；已关闭的不再重建
    svc = getattr(request.app.state, "subscriptions", None)
    if svc is None:
        svc = build_service()
        request.app.state.subscriptions = svc
    elif svc.provider.closed:
        raise HTTPException(status_code=503, detail="service is shutting down")
    return svc


def _to_domain(body: SubscriptionBody) -> Subscription:
    return Subscription(
        user_id=str(body.id),
        service_name=body.name,
        cost=body.cost,
        start_date=parse_month(body.date_start, "date_start"),
        end_date=parse_month_opt(body.date_end, "date_end"),
    )


def _to_out(sub: Subscription) -> dict:
    return {
        "id": sub.user_id,
        "name": sub.service_name,
        "cost": sub.cost,
        "date_start": format_month(sub.start_date),
        "date_end": format_month(sub.end_date),
    }


def _raise_http(e: SubscriptionError, log: LogContext | None = None):
    if log is not None:
        log.write("ERROR", f"{type(e).__name__}: {e}")
    if isinstance(e, OverlapRejected):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InfrastructureFailure):
        logger.error("subscription storage failure: %s", e, exc_info=e)
        raise HTTPException(status_code=500, detail="internal error")
    raise HTTPException(status_code=500, detail="internal error")


@router.post("", status_code=201)
def api_subscription_create(body: SubscriptionBody, svc: SubscriptionService = Depends(get_service)):
    log = LogContext("CREATE_SUBSCRIPTION")
    log.set_payload(body.model_dump(mode="json"))
    log.set_entity("subscription", f"{body.id}/{body.name}")
    sub = _to_domain(body)
    try:
        created = svc.create(sub)
    except SubscriptionError as e:
        _raise_http(e, log)
    log.set_after(created.to_dict())
    log.write("OK")
    return {"message": "ok", "item": _to_out(created)}


@router.put("")
def api_subscription_update(body: SubscriptionBody, svc: SubscriptionService = Depends(get_service)):
    log = LogContext("UPDATE_SUBSCRIPTION")
    log.set_payload(body.model_dump(mode="json"))
    log.set_entity("subscription", f"{body.id}/{body.name}")
    sub = _to_domain(body)
    try:
        updated = svc.update(sub)
    except SubscriptionError as e:
        _raise_http(e, log)
    log.set_after(updated.to_dict())
    log.write("OK")
    return {"message": "ok", "item": _to_out(updated)}


@router.delete("")
def api_subscription_delete(
    id: UUID = Query(...),
    name: str = Query(..., min_length=1),
    svc: SubscriptionService = Depends(get_service),
):
    log = LogContext("DELETE_SUBSCRIPTION")
    log.set_entity("subscription", f"{id}/{name}")
    try:
        svc.delete(str(id), name)
    except SubscriptionError as e:
        _raise_http(e, log)
    log.write("OK")
    return {"message": "ok"}


@router.get("")
def api_subscription_list(id: UUID = Query(...), svc: SubscriptionService = Depends(get_service)):
    try:
        items = svc.read_all_by_user_id(str(id))
    except SubscriptionError as e:
        _raise_http(e)
    return {"items": [_to_out(s) for s in items]}


@router.get("/latest")
def api_subscription_latest(id: UUID = Query(...), svc: SubscriptionService = Depends(get_service)):
    try:
        sub = svc.get_latest(str(id))
    except SubscriptionError as e:
        _raise_http(e)
    return _to_out(sub)


@router.get("/total_cost")
def api_subscription_total_cost(
    id: UUID = Query(...),
    name: str = Query(..., min_length=1),
    start_date: str = Query(..., description="MM-YYYY"),
    end_date: Optional[str] = Query(None, description="MM-YYYY，可选：不传表示无上界"),
    svc: SubscriptionService = Depends(get_service),
):
    start = parse_month(start_date, "start_date")
    end = parse_month_opt(end_date, "end_date")
    try:
        total = svc.total_subscriptions_cost(str(id), name, start, end)
    except SubscriptionError as e:
        _raise_http(e)
    return {"total_cost": total}
