"""
SQLAlchemy ORM Models
Tables: heal_runs, deployments.
All enum-like columns use plain TEXT — no PostgreSQL enum types.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, Float, Text, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class HealRun(Base):
    __tablename__ = "heal_runs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    identity = Column(Text)
    workflow_name = Column(Text, nullable=False)
    fix_count = Column(Integer, nullable=False, default=0)
    confidence = Column(Float, nullable=False)
    fixes = Column(JSONB, default=list)
    created_at = Column(
        DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    deployments = relationship(
        "Deployment", back_populates="heal_run", cascade="all, delete-orphan",
    )


class Deployment(Base):
    __tablename__ = "deployments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    heal_run_id = Column(
        UUID(as_uuid=True),
        ForeignKey("heal_runs.id", ondelete="CASCADE"),
    )
    identity = Column(Text)
    target = Column(Text, nullable=False, default="n8n")
    external_id = Column(Text)
    status = Column(Text, nullable=False, default="pending")
    message = Column(Text)
    created_at = Column(
        DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    heal_run = relationship("HealRun", back_populates="deployments")
