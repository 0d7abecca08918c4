"""
AutoPlan API routes — buildings, floor uploads and analysis, plan lifecycle, PDF export.

GET  /api/v1/autoplan/symbols                   — symbol catalogue grouped by category
POST /api/v1/autoplan/buildings                 — create building
GET  /api/v1/autoplan/buildings/{id}            — building detail
POST /api/v1/autoplan/floors                    — upload floor plan PDF (queues analysis)
POST /api/v1/autoplan/floors/{id}/analyze       — run analysis on a pending floor; background by default
POST /api/v1/autoplan/plans                     — create plan from an analysed floor
GET  /api/v1/autoplan/plans/{id}                — plan with approval
PATCH /api/v1/autoplan/plans/{id}               — save editor state as a new version
POST /api/v1/autoplan/plans/{id}/submit         — draft → review
POST /api/v1/autoplan/plans/{id}/approve        — competent-person approval
POST /api/v1/autoplan/plans/{id}/export         — render and store the A3 PDF
GET  /api/v1/autoplan/plans/{id}/pdf            — download the stored PDF
"""
import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from bluebook.api.deps import Principal, get_current_principal, get_organization_id
from bluebook.config import DOWNLOAD_DIR, MAX_UPLOAD_BYTES
from bluebook.db import get_db
from bluebook.models.autoplan_schema import (
    Approval,
    ApprovalRequest,
    Building,
    BuildingCreate,
    Floor,
    InvalidStatusTransition,
    Plan,
    PlanRevision,
)
from bluebook.services.autoplan import plan_service
from bluebook.services.autoplan.analyzer import AnalysisError
from bluebook.services.autoplan.symbols import SYMBOL_CATEGORIES, list_by_category

router = APIRouter(prefix="/api/v1/autoplan", tags=["AutoPlan"])
logger = logging.getLogger("bluebook-api.autoplan")


class PlanCreateRequest(BaseModel):
    floor_id: str


def _plan_out(row) -> dict:
    return Plan.model_validate(row).model_dump(mode="json", by_alias=True)


_NOT_FOUND = (
    plan_service.BuildingNotFoundError,
    plan_service.FloorNotFoundError,
    plan_service.PlanNotFoundError,
)


def _raise_http(e: Exception):
    """Map service exceptions onto HTTP status codes."""
    if isinstance(e, _NOT_FOUND):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, plan_service.OrganizationAccessError):
        raise HTTPException(status_code=403, detail=str(e))
    if isinstance(e, plan_service.ApprovalValidationError):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, (plan_service.PlanStateError, InvalidStatusTransition)):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, AnalysisError):
        raise HTTPException(status_code=502, detail=f"Floor plan analysis failed: {e}")
    raise e


# ── Symbols ───────────────────────────────────────────────────────────────────

@router.get("/symbols")
async def get_symbols():
    return {
        "categories": [
            {
                "key": key,
                "label": label,
                "symbols": [s.to_dict() for s in list_by_category(key)],
            }
            for key, label in SYMBOL_CATEGORIES
        ]
    }


# ── Buildings ─────────────────────────────────────────────────────────────────

@router.post("/buildings", status_code=201)
async def create_building(
    payload: BuildingCreate,
    principal: Principal = Depends(get_current_principal),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    building = await plan_service.create_building(db, organization_id, principal.user_id, payload)
    return {"building": Building.model_validate(building).model_dump(mode="json")}


@router.get("/buildings/{building_id}")
async def get_building(
    building_id: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        building = await plan_service.get_building(db, building_id, organization_id)
    except Exception as e:
        _raise_http(e)
    return {"building": Building.model_validate(building).model_dump(mode="json")}


# ── Floors ────────────────────────────────────────────────────────────────────

@router.post("/floors", status_code=201)
async def upload_floor(
    building_id: str = Form(...),
    floor_number: int = Form(...),
    floor_name: Optional[str] = Form(None),
    file: UploadFile = File(...),
    principal: Principal = Depends(get_current_principal),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    filename = file.filename or ""
    if not filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are accepted")
    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"File too large. Maximum {MAX_UPLOAD_BYTES // (1024 * 1024)}MB.",
        )

    try:
        floor = await plan_service.save_floor_upload(
            db, building_id, organization_id, principal.user_id,
            floor_number, content, filename, floor_name,
        )
    except Exception as e:
        _raise_http(e)
    await db.commit()

    from bluebook.workers.tasks import analyze_floor_plan_task
    task = analyze_floor_plan_task.delay(floor.id, principal.user_id)
    logger.info(f"Floor {floor.id} uploaded ({len(content):,} bytes), analysis task {task.id}")
    return {"floor": Floor.model_validate(floor).model_dump(mode="json"), "task_id": task.id}


@router.post("/floors/{floor_id}/analyze")
async def analyze_floor(
    floor_id: str,
    background: bool = True,
    principal: Principal = Depends(get_current_principal),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        floor = await plan_service.get_floor(db, floor_id)
    except Exception as e:
        _raise_http(e)
    if floor.building.organization_id != organization_id:
        raise HTTPException(status_code=404, detail="Floor not found")

    if background:
        from bluebook.workers.tasks import analyze_floor_plan_task
        task = analyze_floor_plan_task.delay(floor_id, principal.user_id)
        return {"floor_id": floor_id, "task_id": task.id, "status": "queued"}

    try:
        result = await plan_service.run_floor_analysis(db, floor_id, performed_by=principal.user_id)
    except Exception as e:
        _raise_http(e)
    return {"floor_id": floor_id, "analysis": result.model_dump(mode="json", by_alias=True)}


# ── Plans ─────────────────────────────────────────────────────────────────────

@router.post("/plans", status_code=201)
async def create_plan(
    body: PlanCreateRequest,
    principal: Principal = Depends(get_current_principal),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        plan = await plan_service.create_plan(db, body.floor_id, organization_id, principal.user_id)
    except Exception as e:
        _raise_http(e)
    return {"plan": _plan_out(plan)}


@router.get("/plans/{plan_id}")
async def get_plan(
    plan_id: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        bundle = await plan_service.load_plan_bundle(db, plan_id, organization_id)
    except Exception as e:
        _raise_http(e)
    return {
        "plan": bundle.plan.model_dump(mode="json", by_alias=True),
        "building": bundle.building.model_dump(mode="json"),
        "floor": bundle.floor.model_dump(mode="json"),
        "approval": bundle.approval.model_dump(mode="json") if bundle.approval else None,
    }


@router.patch("/plans/{plan_id}")
async def revise_plan(
    plan_id: str,
    revision: PlanRevision,
    principal: Principal = Depends(get_current_principal),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        plan = await plan_service.revise_plan(db, plan_id, organization_id, revision, principal.user_id)
    except Exception as e:
        _raise_http(e)
    return {"plan": _plan_out(plan)}


@router.post("/plans/{plan_id}/submit")
async def submit_plan(
    plan_id: str,
    principal: Principal = Depends(get_current_principal),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        plan = await plan_service.submit_for_review(db, plan_id, organization_id, principal.user_id)
    except Exception as e:
        _raise_http(e)
    return {"plan": _plan_out(plan)}


@router.post("/plans/{plan_id}/approve", status_code=201)
async def approve_plan(
    plan_id: str,
    body: ApprovalRequest,
    principal: Principal = Depends(get_current_principal),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        approval = await plan_service.approve_plan(db, plan_id, organization_id, body, principal.user_id)
    except Exception as e:
        _raise_http(e)
    return {"approval": Approval.model_validate(approval).model_dump(mode="json")}


@router.post("/plans/{plan_id}/export")
async def export_plan(
    plan_id: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        path, pdf_bytes = await plan_service.export_plan_pdf(db, plan_id, organization_id)
    except Exception as e:
        _raise_http(e)
    return {
        "path": path,
        "size": len(pdf_bytes),
        "download_url": f"{router.prefix}/plans/{plan_id}/pdf",
    }


@router.get("/plans/{plan_id}/pdf")
async def download_plan_pdf(
    plan_id: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        plan = await plan_service.get_plan(db, plan_id, organization_id)
    except Exception as e:
        _raise_http(e)
    if not plan.final_pdf_path:
        raise HTTPException(status_code=404, detail="Plan has not been exported")
    full_path = os.path.join(DOWNLOAD_DIR, plan.final_pdf_path)
    if not os.path.exists(full_path):
        raise HTTPException(status_code=404, detail="Exported PDF missing")
    return FileResponse(
        full_path,
        media_type="application/pdf",
        filename=os.path.basename(full_path),
    )
