"""
conftest.py — Shared pytest fixtures for the hf.bluebook backend test suite.

Database-backed tests run against an in-memory SQLite database through
aiosqlite; JSONB columns are rendered as plain JSON for that dialect. Each
test gets a fresh schema.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``bluebook.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import io
import json
import os
import sys
from datetime import datetime, timezone
from decimal import Decimal

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any bluebook imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from jose import jwt  # noqa: E402
from reportlab.lib.pagesizes import A4, landscape  # noqa: E402
from reportlab.pdfgen import canvas  # noqa: E402
from sqlalchemy import JSON, event  # noqa: E402
from sqlalchemy.dialects.postgresql import JSONB  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from bluebook.config import JWT_ALGORITHM, JWT_SECRET_KEY  # noqa: E402
from bluebook.db import Base  # noqa: E402
from bluebook.models import orm_models  # noqa: E402
from bluebook.models.autoplan_schema import Building, Floor, Plan  # noqa: E402

ORG_ID = "org-harmony"
OTHER_ORG_ID = "org-elsewhere"
USER_ID = "user-surveyor"
ADMIN_ID = "user-admin"


# Make JSONB render as JSON for SQLite
@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine):
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Local storage: every test writes uploads and exports under tmp_path
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def storage_dirs(tmp_path, monkeypatch):
    from bluebook.api import autoplan_routes
    from bluebook.services.autoplan import plan_service
    from bluebook.services.golden_thread import package_service

    upload_dir = tmp_path / "uploads"
    download_dir = tmp_path / "downloads"
    upload_dir.mkdir()
    download_dir.mkdir()
    monkeypatch.setattr(plan_service, "UPLOAD_DIR", str(upload_dir))
    monkeypatch.setattr(plan_service, "DOWNLOAD_DIR", str(download_dir))
    monkeypatch.setattr(package_service, "DOWNLOAD_DIR", str(download_dir))
    monkeypatch.setattr(autoplan_routes, "DOWNLOAD_DIR", str(download_dir))
    return upload_dir, download_dir


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def make_token(sub: str = USER_ID, org_id: str = ORG_ID, is_admin: bool = False) -> str:
    claims = {"sub": sub, "is_admin": is_admin}
    if org_id:
        claims["org_id"] = org_id
    return jwt.encode(claims, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token(sub=ADMIN_ID, is_admin=True)}"}


# ---------------------------------------------------------------------------
# Source floor plans
# ---------------------------------------------------------------------------

def make_floor_plan_pdf(pagesize=landscape(A4)) -> bytes:
    """A one-page drawing: outer walls, a corridor and two flats."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=pagesize, invariant=1)
    w, h = pagesize
    c.setLineWidth(3)
    c.rect(40, 40, w - 80, h - 80, stroke=1, fill=0)
    c.setLineWidth(1)
    c.rect(40, h / 2 - 30, w - 80, 60, stroke=1, fill=0)
    c.line(w / 2, 40, w / 2, h / 2 - 30)
    c.setFont("Helvetica", 14)
    c.drawString(80, 100, "Flat 3A")
    c.drawString(w / 2 + 40, 100, "Flat 3B")
    c.drawString(60, 60, "Scale 1:100")
    c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture
def floor_plan_pdf():
    return make_floor_plan_pdf()


# ---------------------------------------------------------------------------
# AutoPlan records
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_building():
    return Building(
        id="bld-1",
        organization_id=ORG_ID,
        name="Riverside Tower",
        address_line_1="12 River Street",
        city="London",
        postcode="E1 6AN",
        jurisdiction="england",
        height_metres=32.5,
        number_of_storeys=11,
        evacuation_strategy="stay_put",
        has_sprinklers=True,
        has_dry_riser=True,
    )


@pytest.fixture
def sample_floor():
    return Floor(
        id="floor-1",
        building_id="bld-1",
        floor_number=3,
        floor_name="Third Floor",
        storage_path="autoplan/org-harmony/floors/floor-1.pdf",
        original_filename="level-3.pdf",
        scale="1:100",
    )


@pytest.fixture
def sample_plan():
    return Plan.model_validate({
        "id": "plan-1",
        "floor_id": "floor-1",
        "building_id": "bld-1",
        "organization_id": ORG_ID,
        "plan_reference": "HF-AP-0001",
        "version": 2,
        "status": "draft",
        "symbol_data": [
            {"instanceId": "s1", "symbolId": "fire_exit", "x": 0.5, "y": 0.95},
            {"instanceId": "s2", "symbolId": "smoke_detector", "x": 0.3, "y": 0.5},
            {"instanceId": "s3", "symbolId": "fire_exit_right", "x": 0.9, "y": 0.5, "rotation": 90},
        ],
        "annotations": [
            {"id": "a1", "type": "text", "x": 0.1, "y": 0.1, "text": "Flat 3A", "fontSize": 10},
            {"id": "a2", "type": "travel_distance", "x": 0.2, "y": 0.5, "endX": 0.8, "endY": 0.5,
             "distanceMetres": 17.5},
            {"id": "a3", "type": "arrow", "x": 0.4, "y": 0.6, "endX": 0.5, "endY": 0.9},
            {"id": "a4", "type": "zone", "x": 0.05, "y": 0.4, "width": 0.9, "height": 0.2,
             "zoneType": "protected_corridor", "text": "Protected corridor"},
        ],
    })


# ---------------------------------------------------------------------------
# Vision model stand-in
# ---------------------------------------------------------------------------

ANALYSIS_REPLY = {
    "confidence": 0.82,
    "scale": "1:100",
    "elements": {
        "exits": [{"x": 0.45, "y": 0.92, "type": "final_exit", "notes": "main entrance"}],
        "fire_doors": [{"x": 0.3, "y": 0.5, "rating": "FD30", "notes": "flat entrance"}],
        "staircases": [{"x": 0.1, "y": 0.5, "type": "protected"}],
        "equipment": [],
        "corridors": [{"x": 0.5, "y": 0.5, "width": 0.1, "height": 0.8}],
        "rooms": [{"x": 0.7, "y": 0.3, "label": "Flat 3A", "type": "flat"}],
    },
    "suggested_symbols": [
        {"symbolId": "fire_exit", "x": 0.45, "y": 0.92, "rotation": 0},
        {"symbolId": "fire_door_fd30", "x": 0.3, "y": 0.5, "rotation": 0},
        {"symbolId": "smoke_detector", "x": 0.5, "y": 0.5},
    ],
    "warnings": ["Scale bar not found — positions approximate"],
    "regulatory_notes": ["Building >18m: Regulation 6 requires floor plans"],
}


class FakeLLM:
    """Records prompts and replies with a canned text, or raises."""

    def __init__(self, reply: str = None, error: Exception = None):
        self.reply = reply if reply is not None else json.dumps(ANALYSIS_REPLY)
        self.error = error
        self.calls = []

    async def vision(self, images_base64, prompt, **kwargs):
        self.calls.append((images_base64, prompt))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def fake_llm():
    return FakeLLM()


# ---------------------------------------------------------------------------
# ORM seed helpers
# ---------------------------------------------------------------------------

async def seed_building(session, organization_id: str = ORG_ID, **overrides):
    fields = dict(
        organization_id=organization_id,
        name="Riverside Tower",
        address_line_1="12 River Street",
        city="London",
        postcode="E1 6AN",
        jurisdiction="england",
        height_metres=32.5,
        number_of_storeys=11,
        has_sprinklers=True,
    )
    fields.update(overrides)
    building = orm_models.AutoplanBuilding(**fields)
    session.add(building)
    await session.flush()
    return building


async def seed_floor(session, building, analysis: dict = None, status: str = None, **overrides):
    fields = dict(
        building_id=building.id,
        floor_number=3,
        floor_name="Third Floor",
        storage_path=f"autoplan/{building.organization_id}/floors/seeded.pdf",
        original_filename="level-3.pdf",
        ai_analysis_status=status or ("completed" if analysis is not None else "pending"),
        ai_analysis_result=analysis,
    )
    fields.update(overrides)
    floor = orm_models.AutoplanFloor(**fields)
    session.add(floor)
    await session.flush()
    return floor


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


async def seed_golden_thread_project(session, organization_id: str = ORG_ID) -> dict:
    """
    Project with two quotes and two products:

      Q-1002 (newest): 1x Intumescent Sealant, 1x free-text survey line
      Q-1001:          2x FD30 Door Set, 5x Intumescent Sealant

    FD30 Door Set is fully specified, certified, linked to BS 476-22 and
    ADB Vol 1 and has two files. Intumescent Sealant has no specifications,
    no certifications, no files and is linked to BS 476-22 only.
    """
    manufacturer = orm_models.Manufacturer(name="Acme Fire Ltd")
    bs476 = orm_models.Regulation(
        reference="BS 476-22", name="Fire tests on building materials - Part 22",
        category="british_standard",
    )
    adb = orm_models.Regulation(
        reference="ADB Vol 1", name="Approved Document B", category="building_regulations",
    )
    session.add_all([manufacturer, bs476, adb])
    await session.flush()

    door = orm_models.Product(
        manufacturer_id=manufacturer.id,
        product_code="FD30-001",
        product_name="FD30 Door Set",
        pillar="fire_doors",
        specifications={"fire_rating": "FD30", "width_mm": 926},
        certifications=["BM TRADA Q-Mark"],
    )
    sealant = orm_models.Product(
        manufacturer_id=manufacturer.id,
        product_code="IS-200",
        product_name="Intumescent Sealant",
        pillar="fire_stopping",
        specifications={},
        certifications=[],
    )
    session.add_all([door, sealant])
    await session.flush()

    session.add_all([
        orm_models.ProductRegulation(product_id=door.id, regulation_id=bs476.id,
                                     compliance_notes="Tested to 30 minutes",
                                     test_evidence_ref="WF-12345"),
        orm_models.ProductRegulation(product_id=door.id, regulation_id=adb.id),
        orm_models.ProductRegulation(product_id=sealant.id, regulation_id=bs476.id),
        orm_models.ProductFile(product_id=door.id, file_name="fd30-datasheet.pdf",
                               file_type="datasheet", file_url="https://files.example/fd30.pdf"),
        orm_models.ProductFile(product_id=door.id, file_name="fd30-certificate.pdf",
                               file_type="certificate"),
    ])

    project = orm_models.Project(organization_id=organization_id, name="Riverside Tower Refurb")
    session.add(project)
    await session.flush()

    older = orm_models.Quote(
        project_id=project.id, organization_id=organization_id, quote_number="Q-1001",
        client_name="Riverside Estates", project_name="Riverside Tower Refurb",
        status="accepted", total=Decimal("1500.00"), created_at=_utc(2026, 1, 10, 9, 30),
    )
    newer = orm_models.Quote(
        project_id=project.id, organization_id=organization_id, quote_number="Q-1002",
        client_name="Riverside Estates", project_name="Riverside Tower Refurb",
        status="sent", total=Decimal("250.00"), created_at=_utc(2026, 2, 1, 14, 0),
    )
    session.add_all([older, newer])
    await session.flush()

    session.add_all([
        orm_models.QuoteLineItem(quote_id=older.id, product_id=door.id, product_code="FD30-001",
                                 description="FD30 Door Set", quantity=2, unit_price=500.0,
                                 line_total=1000.0, sort_order=0),
        orm_models.QuoteLineItem(quote_id=older.id, product_id=sealant.id, product_code="IS-200",
                                 description="Intumescent Sealant", quantity=5, unit_price=100.0,
                                 line_total=500.0, sort_order=1),
        orm_models.QuoteLineItem(quote_id=newer.id, product_id=sealant.id, product_code="IS-200",
                                 description="Intumescent Sealant", quantity=1, unit_price=150.0,
                                 line_total=150.0, sort_order=0),
        orm_models.QuoteLineItem(quote_id=newer.id, description="Site survey",
                                 quantity=1, unit_price=100.0, line_total=100.0, sort_order=1),
    ])
    await session.flush()
    return {
        "project_id": project.id,
        "door_id": door.id,
        "sealant_id": sealant.id,
        "bs476_id": bs476.id,
        "adb_id": adb.id,
    }


@pytest.fixture
async def gt_project(db_session):
    return await seed_golden_thread_project(db_session)


@pytest.fixture
async def empty_project(db_session):
    project = orm_models.Project(organization_id=ORG_ID, name="Empty Shell")
    db_session.add(project)
    await db_session.flush()
    return project.id


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

@pytest.fixture
async def client(db_session):
    from httpx import ASGITransport, AsyncClient

    from bluebook.db import get_db
    from bluebook.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
