from __future__ import annotations

import os
from datetime import date
from io import BytesIO

# must be set before keel.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_ACCESS_SECRET"] = "test-secret"

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook
from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from keel.core.security import create_access_token
from keel.db import Base, get_db
from keel.main import app
from keel.models import CadetVesselAssignment, Role, ShipType, User, Vessel

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # let SQLAlchemy drive BEGIN/SAVEPOINT itself on pysqlite
    @event.listens_for(eng, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    with factory() as s:
        s.add_all([Role(role_name="ADMIN"), Role(role_name="CADET"), Role(role_name="SHORE")])
        s.add_all([
            ShipType(type_code="BULK", name="Bulk Carrier"),
            ShipType(type_code="OIL_TANKER", name="Oil Tanker"),
        ])
        s.commit()
    return factory


@pytest.fixture()
def db(session_factory):
    with session_factory() as s:
        yield s


@pytest.fixture()
def fetch_all(session_factory):
    """Snapshot a table through a short-lived session, as plain dicts."""

    def _all(model):
        cols = list(model.__table__.columns)
        with session_factory() as s:
            stmt = select(model).order_by(*model.__table__.primary_key.columns)
            return [{c.key: getattr(obj, c.key) for c in cols} for obj in s.scalars(stmt)]

    return _all


@pytest.fixture()
def client(session_factory):
    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_client(client):
    client.cookies.set("access_token", create_access_token(1, "ADMIN"))
    return client


@pytest.fixture()
def xlsx():
    """Build an in-memory workbook: header row plus data rows."""

    def _build(headers, rows=(), title="Sheet1"):
        wb = Workbook()
        ws = wb.active
        ws.title = title
        if headers is not None:
            ws.append(list(headers))
        for r in rows:
            ws.append(list(r))
        buf = BytesIO()
        wb.save(buf)
        return buf.getvalue()

    return _build


@pytest.fixture()
def upload():
    def _files(content: bytes, name: str = "import.xlsx"):
        return {"file": (name, content, XLSX)}

    return _files


def _role_id(db, name):
    return db.query(Role).filter_by(role_name=name).one().id


def _ship_type_id(db, name):
    return db.query(ShipType).filter_by(name=name).one().id


@pytest.fixture()
def add_cadet(db):
    def _add(email, full_name="Existing Cadet", rank_label="Deck Cadet", role="CADET"):
        user = User(
            email=email,
            full_name=full_name,
            password_hash="x",
            role_id=_role_id(db, role),
            trainee_type="DECK_CADET",
            rank_label=rank_label,
            category="Cadet",
            trb_applicable=True,
        )
        db.add(user)
        db.commit()
        return user

    return _add


@pytest.fixture()
def add_vessel(db):
    def _add(imo, name="MV Existing", ship_type="Bulk Carrier"):
        vessel = Vessel(imo_number=imo, name=name, ship_type_id=_ship_type_id(db, ship_type))
        db.add(vessel)
        db.commit()
        return vessel

    return _add


@pytest.fixture()
def add_assignment(db):
    def _add(cadet, vessel, start, end=None, status=None):
        a = CadetVesselAssignment(
            cadet_id=cadet.id,
            vessel_id=vessel.id,
            start_date=date.fromisoformat(start),
            end_date=date.fromisoformat(end) if end else None,
            status=status or ("COMPLETED" if end else "ACTIVE"),
        )
        db.add(a)
        db.commit()
        return a

    return _add
