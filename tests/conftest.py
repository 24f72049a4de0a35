import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('APP_ENV', 'test')
os.environ.setdefault('SECRET_KEY', 'test-secret')
os.environ.setdefault('WORKFLOW_SCHEDULER_ENABLED', 'false')

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.security import hash_password  # noqa: E402
from app.models import Base, Subscription, User  # noqa: E402


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return self.now


class RecordingNotifier:
    """Stands in for ReminderNotifier and remembers every send with the clock's date."""

    def __init__(self, clock: FakeClock, fail_labels=()):
        self.clock = clock
        self.fail_labels = set(fail_labels)
        self.sent = []

    async def send_reminder(self, to, label, subscription):
        if label in self.fail_labels:
            raise RuntimeError(f'mail transport rejected {label}')
        self.sent.append({'to': to, 'label': label, 'date': self.clock().date(), 'subscription_id': subscription['id']})
        return {'status': 'sent', 'to': to, 'label': label}

    @property
    def log(self):
        return [(entry['label'], entry['date'].isoformat()) for entry in self.sent]


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture()
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def clock():
    return FakeClock(utc(2024, 2, 1, 9, 0))


@pytest.fixture()
def notifier(clock):
    return RecordingNotifier(clock)


@pytest.fixture()
def make_subscription(session_factory):
    """Insert a user + subscription directly and return the subscription id."""

    def _make(renewal_date, status='active', email='jane@example.com', username='jane'):
        db = session_factory()
        try:
            user = db.query(User).filter(User.email == email).first()
            if user is None:
                user = User(username=username, email=email, password_hash=hash_password('secret123'))
                db.add(user)
                db.flush()
            sub = Subscription(
                user_id=user.id,
                name='Netflix Premium',
                price=15.99,
                currency='USD',
                frequency='monthly',
                category='Streaming',
                payment_method='Credit Card',
                status=status,
                start_date=renewal_date - timedelta(days=30),
                renewal_date=renewal_date,
            )
            db.add(sub)
            db.commit()
            return str(sub.id)
        finally:
            db.close()

    return _make
