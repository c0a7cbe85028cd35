from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Integer,
    String,
    Text,
    Date,
    DateTime,
    func,
    SmallInteger,
    ForeignKey,
    Index,
    Enum,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from .db import Base
from datetime import date, datetime


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(120), nullable=False)
    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id"), nullable=False)
    # Trainee profile (only populated for cadets / ratings)
    trainee_type: Mapped[str | None] = mapped_column(String(30))
    nationality: Mapped[str | None] = mapped_column(String(100))
    rank_label: Mapped[str | None] = mapped_column(String(50))
    category: Mapped[str | None] = mapped_column(String(20))
    trb_applicable: Mapped[bool | None] = mapped_column(Boolean)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now, server_default=func.now(), onupdate=func.now())

    role = relationship("Role", lazy="joined")


class ShipType(Base):
    __tablename__ = "ship_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now, server_default=func.now(), onupdate=func.now())


class Vessel(Base):
    __tablename__ = "vessels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    # string to preserve leading zeros; immutable after creation
    imo_number: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    ship_type_id: Mapped[int] = mapped_column(ForeignKey("ship_types.id"), nullable=False)
    flag: Mapped[str | None] = mapped_column(String(100))
    classification_society: Mapped[str | None] = mapped_column(String(150))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now, server_default=func.now(), onupdate=func.now())

    ship_type = relationship("ShipType", lazy="joined")


class TaskTemplate(Base):
    __tablename__ = "task_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    part_number: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    section_name: Mapped[str | None] = mapped_column(String(200))
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    stcw_reference: Mapped[str | None] = mapped_column(String(200))
    mandatory_for_all: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    department: Mapped[str] = mapped_column(String(20), nullable=False, default="General")
    # NULL = task applies to every ship type
    ship_type_id: Mapped[int | None] = mapped_column(ForeignKey("ship_types.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("title", "ship_type_id", name="unique_task_title_per_type"),
    )


class CadetVesselAssignment(Base):
    __tablename__ = "cadet_vessel_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cadet_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    vessel_id: Mapped[int] = mapped_column(ForeignKey("vessels.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)  # null = still on board
    status: Mapped[str] = mapped_column(Enum("ACTIVE", "COMPLETED", "CANCELLED", name="assignment_status"), nullable=False, default="ACTIVE")
    current_rank: Mapped[str | None] = mapped_column(String(50))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_cva_cadet", "cadet_id"),
        Index("idx_cva_vessel", "vessel_id"),
    )


class ImportBatch(Base):
    __tablename__ = "import_batches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    entity: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_user_id: Mapped[int | None] = mapped_column(Integer)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now, server_default=func.now())

    __table_args__ = (
        Index("idx_import_batch_entity", "entity", "created_at"),
    )
