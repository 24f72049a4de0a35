"""
SQLAlchemy models for the subscription tracker.
"""
from __future__ import annotations

import uuid

from sqlalchemy import (
    DECIMAL,
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

SUBSCRIPTION_STATUSES = ("active", "cancelled", "expired")
SUBSCRIPTION_FREQUENCIES = ("daily", "weekly", "monthly", "yearly")
SUBSCRIPTION_CURRENCIES = ("USD", "INR")
SUBSCRIPTION_CATEGORIES = ("Streaming", "Music", "Video", "Gaming", "Other")

RUN_PENDING = "pending"
RUN_RUNNING = "running"
RUN_SLEEPING = "sleeping"
RUN_COMPLETED = "completed"
RUN_FAILED = "failed"

STEP_SLEEPING = "sleeping"
STEP_COMPLETED = "completed"


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(Text, nullable=False, unique=True)
    email = Column(Text, nullable=False, unique=True, index=True)
    password_hash = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    subscriptions = relationship("Subscription", back_populates="user", cascade="all,delete-orphan")


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    price = Column(DECIMAL(10, 2), nullable=False)
    currency = Column(Text, nullable=False, default="USD")
    frequency = Column(Text, nullable=False)
    category = Column(Text, nullable=False)
    payment_method = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="active")
    start_date = Column(DateTime(timezone=True), nullable=False)
    renewal_date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="subscriptions")


class WorkflowRun(Base):
    __tablename__ = "workflow_runs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    workflow_name = Column(Text, nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(Text, nullable=False, default=RUN_PENDING, index=True)
    next_wake_at = Column(DateTime(timezone=True), index=True)
    next_step_index = Column(Integer, nullable=False, default=0)
    retries = Column(Integer, nullable=False, default=0)
    attempts = Column(Integer, nullable=False, default=0)
    error = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    finished_at = Column(DateTime(timezone=True))

    steps = relationship(
        "WorkflowStep",
        back_populates="run",
        cascade="all,delete-orphan",
        order_by="WorkflowStep.position",
    )


class WorkflowStep(Base):
    __tablename__ = "workflow_steps"
    __table_args__ = (UniqueConstraint("run_id", "name", name="uq_workflow_steps_run_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Uuid(as_uuid=True), ForeignKey("workflow_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    name = Column(Text, nullable=False)
    kind = Column(Text, nullable=False)
    status = Column(Text, nullable=False)
    result = Column(JSON)
    wake_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True))

    run = relationship("WorkflowRun", back_populates="steps")
