from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import utc
from app.core.exceptions import NotFoundError, ValidationError
from app.core.security import hash_password
from app.models import User
from app.services.subscription_service import (
    SubscriptionRepository,
    cancel_subscription,
    compute_renewal_date,
    create_subscription,
    get_subscription,
    list_user_subscriptions,
    serialize_subscription,
    update_subscription,
)

NOW = utc(2024, 2, 1, 9, 0)


def _payload(**overrides):
    payload = {
        "name": "Spotify",
        "price": 9.99,
        "currency": "USD",
        "frequency": "monthly",
        "category": "Music",
        "payment_method": "Visa",
        "start_date": utc(2024, 1, 20),
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def user(db):
    user = User(username="sam", email="sam@example.com", password_hash=hash_password("secret123"))
    db.add(user)
    db.commit()
    return user


@pytest.mark.parametrize(
    "frequency,days",
    [("daily", 1), ("weekly", 7), ("monthly", 30), ("yearly", 365)],
)
def test_compute_renewal_date(frequency, days):
    start = utc(2024, 1, 1)
    assert compute_renewal_date(start, frequency) == start + timedelta(days=days)


def test_compute_renewal_date_rejects_unknown_frequency():
    with pytest.raises(ValidationError):
        compute_renewal_date(utc(2024, 1, 1), "hourly")


def test_create_defaults_renewal_and_status(db, user):
    sub = create_subscription(db, str(user.id), _payload(), now=NOW)
    data = serialize_subscription(sub)
    assert data["renewal_date"] == "2024-02-19T00:00:00+00:00"
    assert data["status"] == "active"
    assert data["price"] == pytest.approx(9.99)


def test_create_marks_past_renewal_expired(db, user):
    sub = create_subscription(
        db,
        str(user.id),
        _payload(start_date=utc(2023, 12, 1), frequency="weekly"),
        now=NOW,
    )
    assert sub.status == "expired"


def test_create_rejects_future_start_and_inverted_dates(db, user):
    with pytest.raises(ValidationError):
        create_subscription(db, str(user.id), _payload(start_date=utc(2024, 3, 1)), now=NOW)
    with pytest.raises(ValidationError):
        create_subscription(db, str(user.id), _payload(renewal_date=utc(2024, 1, 10)), now=NOW)


def test_update_cancel_and_list(db, user):
    sub = create_subscription(db, str(user.id), _payload(), now=NOW)
    update_subscription(db, sub, {"price": 11.5, "name": "Spotify Duo"}, now=NOW)
    assert serialize_subscription(sub)["name"] == "Spotify Duo"

    cancel_subscription(db, sub)
    assert get_subscription(db, str(sub.id)).status == "cancelled"
    assert [s.id for s in list_user_subscriptions(db, str(user.id))] == [sub.id]


def test_get_subscription_not_found(db):
    with pytest.raises(NotFoundError):
        get_subscription(db, "not-a-uuid")


def test_repository_snapshot_includes_owner(session_factory, db, user):
    sub = create_subscription(db, str(user.id), _payload(), now=NOW)
    repo = SubscriptionRepository(session_factory)

    snapshot = repo.find_with_user(str(sub.id))
    assert snapshot["user"] == {"id": str(user.id), "username": "sam", "email": "sam@example.com"}
    assert snapshot["status"] == "active"
    assert repo.find_with_user("5b0c9a0e-0000-4000-8000-000000000000") is None
    assert repo.find_with_user(None) is None
