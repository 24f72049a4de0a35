"""
Subscription persistence helpers shared by the API and the reminder workflow.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session, joinedload

from app.core.clock import coerce_utc, now_utc, parse_uuid
from app.core.exceptions import NotFoundError, ValidationError
from app.core.logger import get_logger
from app.models import Subscription

logger = get_logger(__name__)

RENEWAL_PERIOD_DAYS = {
    "daily": 1,
    "weekly": 7,
    "monthly": 30,
    "yearly": 365,
}

UPDATABLE_FIELDS = (
    "name",
    "price",
    "currency",
    "frequency",
    "category",
    "payment_method",
    "status",
    "start_date",
    "renewal_date",
)


def compute_renewal_date(start_date: datetime, frequency: str) -> datetime:
    try:
        period = RENEWAL_PERIOD_DAYS[frequency]
    except KeyError:
        raise ValidationError(f"Unsupported frequency: {frequency}")
    return coerce_utc(start_date) + timedelta(days=period)


def serialize_subscription(sub: Subscription) -> Dict[str, Any]:
    return {
        "id": str(sub.id),
        "user_id": str(sub.user_id),
        "name": sub.name,
        "price": float(sub.price) if sub.price is not None else None,
        "currency": sub.currency,
        "frequency": sub.frequency,
        "category": sub.category,
        "payment_method": sub.payment_method,
        "status": sub.status,
        "start_date": coerce_utc(sub.start_date).isoformat() if sub.start_date else None,
        "renewal_date": coerce_utc(sub.renewal_date).isoformat() if sub.renewal_date else None,
        "created_at": coerce_utc(sub.created_at).isoformat() if sub.created_at else None,
        "updated_at": coerce_utc(sub.updated_at).isoformat() if sub.updated_at else None,
    }


class SubscriptionRepository:
    """Read side used by the reminder workflow."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def find_with_user(self, subscription_id: Any) -> Optional[Dict[str, Any]]:
        """Return a JSON-safe snapshot of the subscription with its owner's name and email."""
        sub_uuid = parse_uuid(subscription_id)
        if sub_uuid is None:
            return None
        db = self._session_factory()
        try:
            sub = (
                db.query(Subscription)
                .options(joinedload(Subscription.user))
                .filter(Subscription.id == sub_uuid)
                .first()
            )
            if sub is None:
                return None
            snapshot = serialize_subscription(sub)
            snapshot["user"] = {
                "id": str(sub.user.id),
                "username": sub.user.username,
                "email": sub.user.email,
            }
            return snapshot
        finally:
            db.close()


def _validate_dates(start_date: datetime, renewal_date: datetime, now: datetime) -> None:
    if start_date > now:
        raise ValidationError("Start date must be in the past")
    if renewal_date <= start_date:
        raise ValidationError("Renewal date must be after start date")


def create_subscription(
    db: Session,
    user_id: str,
    payload: Dict[str, Any],
    now: Optional[datetime] = None,
) -> Subscription:
    now = now or now_utc()
    start_date = coerce_utc(payload["start_date"])
    renewal_date = payload.get("renewal_date")
    renewal_date = coerce_utc(renewal_date) if renewal_date else compute_renewal_date(start_date, payload["frequency"])
    _validate_dates(start_date, renewal_date, now)

    status = payload.get("status") or "active"
    if renewal_date < now:
        status = "expired"

    sub = Subscription(
        user_id=parse_uuid(user_id),
        name=payload["name"].strip(),
        price=payload["price"],
        currency=payload.get("currency") or "USD",
        frequency=payload["frequency"],
        category=payload["category"],
        payment_method=payload["payment_method"].strip(),
        status=status,
        start_date=start_date,
        renewal_date=renewal_date,
    )
    db.add(sub)
    db.commit()
    db.refresh(sub)
    logger.info("Created subscription %s for user %s (renews %s, status=%s)", sub.id, user_id, renewal_date.isoformat(), status)
    return sub


def list_user_subscriptions(db: Session, user_id: str) -> list[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == parse_uuid(user_id))
        .order_by(Subscription.renewal_date.asc())
        .all()
    )


def get_subscription(db: Session, subscription_id: str) -> Subscription:
    sub_uuid = parse_uuid(subscription_id)
    sub = db.get(Subscription, sub_uuid) if sub_uuid else None
    if sub is None:
        raise NotFoundError("Subscription not found")
    return sub


def update_subscription(db: Session, sub: Subscription, payload: Dict[str, Any], now: Optional[datetime] = None) -> Subscription:
    now = now or now_utc()
    for field in UPDATABLE_FIELDS:
        if field in payload and payload[field] is not None:
            value = payload[field]
            if field in ("start_date", "renewal_date"):
                value = coerce_utc(value)
            setattr(sub, field, value)
    _validate_dates(coerce_utc(sub.start_date), coerce_utc(sub.renewal_date), now)
    db.commit()
    db.refresh(sub)
    logger.info("Updated subscription %s fields=%s", sub.id, sorted(k for k, v in payload.items() if v is not None))
    return sub


def cancel_subscription(db: Session, sub: Subscription) -> Subscription:
    sub.status = "cancelled"
    db.commit()
    db.refresh(sub)
    logger.info("Cancelled subscription %s", sub.id)
    return sub


def delete_subscription(db: Session, sub: Subscription) -> Dict[str, Any]:
    data = serialize_subscription(sub)
    db.delete(sub)
    db.commit()
    logger.info("Deleted subscription %s", data["id"])
    return data
