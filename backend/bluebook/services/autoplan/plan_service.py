"""
AutoPlan Plan Service — buildings, floors and plan lifecycle on top of the ORM.

Plans are append-only: every save from the editor inserts the next version of
that plan and supersedes the row it was made from. Floors move through the
analysis state machine once (pending → analyzing → completed | failed).
Every state change writes an autoplan_audit_log row in the same session; the
caller owns the commit except where noted.
"""
from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bluebook.config import DOWNLOAD_DIR, PLAN_REFERENCE_PREFIX, UPLOAD_DIR
from bluebook.models.autoplan_schema import (
    AIAnalysisResult,
    Approval,
    ApprovalRequest,
    Building,
    BuildingCreate,
    ComplianceChecklist,
    Floor,
    FloorAnalysisStatus,
    InvalidStatusTransition,
    PlacedSymbol,
    Plan,
    PlanRevision,
    PlanStatus,
    SuggestedSymbol,
    check_floor_transition,
    check_plan_transition,
)
from bluebook.models.orm_models import (
    AutoplanApproval,
    AutoplanAuditLog,
    AutoplanBuilding,
    AutoplanFloor,
    AutoplanPlan,
)
from bluebook.services.autoplan.analyzer import analyze_floor_plan
from bluebook.services.autoplan.plan_renderer import probe_source_page, render_plan_pdf

logger = logging.getLogger("bluebook-autoplan")

AnalyzeFn = Callable[[bytes, Building], Awaitable[AIAnalysisResult]]


class BuildingNotFoundError(LookupError):
    pass


class FloorNotFoundError(LookupError):
    pass


class PlanNotFoundError(LookupError):
    pass


class OrganizationAccessError(PermissionError):
    """Record exists but belongs to another organization."""


class PlanStateError(RuntimeError):
    """Operation not allowed in the plan's current status."""


class ApprovalValidationError(ValueError):
    pass


@dataclass(frozen=True)
class PlanBundle:
    """Everything the renderer needs for one plan."""
    plan: Plan
    building: Building
    floor: Floor
    approval: Optional[Approval]


# ── Helpers ───────────────────────────────────────────────────────────────────

def next_plan_reference(count: int) -> str:
    """Reference for an organization's next plan, given how many it already has."""
    return f"{PLAN_REFERENCE_PREFIX}-{count + 1:04d}"


def seed_symbols(suggestions: list) -> list[dict]:
    """Turn stored AI suggestions into placed symbols with fresh instance ids."""
    placed = []
    for raw in suggestions or []:
        suggestion = SuggestedSymbol.model_validate(raw)
        symbol = PlacedSymbol(
            instance_id=str(uuid.uuid4()),
            symbol_id=suggestion.symbol_id,
            x=suggestion.x,
            y=suggestion.y,
            rotation=suggestion.rotation or 0.0,
            scale=1.0,
            label=suggestion.label,
        )
        placed.append(symbol.model_dump(by_alias=True, exclude_none=True))
    return placed


def attestation_text(approver_name: str, plan_reference: str) -> str:
    return (
        f"I, {approver_name}, confirm that this fire safety plan ({plan_reference}) "
        f"has been reviewed and meets the applicable fire safety regulations."
    )


def validate_approval_request(request: ApprovalRequest) -> ComplianceChecklist:
    """Reject incomplete approvals before any database work is done."""
    for field_name in ("approver_name", "approver_qualifications", "approver_company"):
        if not getattr(request, field_name).strip():
            raise ApprovalValidationError(f"{field_name} is required")
    checklist = request.checklist_results
    if checklist is None:
        raise ApprovalValidationError("checklist_results is required")
    unchecked = checklist.unchecked()
    if unchecked:
        raise ApprovalValidationError(
            f'All checklist items must be true. "{unchecked[0]}" is not checked.'
        )
    return checklist


def _audit(
    session: AsyncSession,
    entity_type: str,
    entity_id: str,
    action: str,
    building_id: Optional[str] = None,
    performed_by: Optional[str] = None,
    details: Optional[dict] = None,
):
    session.add(AutoplanAuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        building_id=building_id,
        action=action,
        performed_by=performed_by,
        details=details or {},
    ))


# ── Storage ───────────────────────────────────────────────────────────────────

def floor_storage_path(organization_id: str, file_id: str) -> str:
    return f"autoplan/{organization_id}/floors/{file_id}.pdf"


def read_floor_pdf(storage_path: str) -> bytes:
    with open(os.path.join(UPLOAD_DIR, storage_path), "rb") as f:
        return f.read()


def _write_file(root: str, relative_path: str, content: bytes) -> str:
    full_path = os.path.join(root, relative_path)
    os.makedirs(os.path.dirname(full_path), exist_ok=True)
    with open(full_path, "wb") as f:
        f.write(content)
    return full_path


# ── Buildings & floors ────────────────────────────────────────────────────────

async def create_building(
    session: AsyncSession, organization_id: str, created_by: Optional[str], payload: BuildingCreate
) -> AutoplanBuilding:
    building = AutoplanBuilding(
        organization_id=organization_id,
        created_by=created_by,
        **payload.model_dump(),
    )
    session.add(building)
    await session.flush()
    logger.info(f"Building created: {building.name} ({building.id})")
    return building


async def get_building(session: AsyncSession, building_id: str, organization_id: str) -> AutoplanBuilding:
    result = await session.execute(
        select(AutoplanBuilding).where(
            AutoplanBuilding.id == building_id,
            AutoplanBuilding.organization_id == organization_id,
        )
    )
    building = result.scalar_one_or_none()
    if building is None:
        raise BuildingNotFoundError("Building not found")
    return building


async def save_floor_upload(
    session: AsyncSession,
    building_id: str,
    organization_id: str,
    uploaded_by: Optional[str],
    floor_number: int,
    content: bytes,
    original_filename: str,
    floor_name: Optional[str] = None,
) -> AutoplanFloor:
    """Store the uploaded PDF under UPLOAD_DIR and register a pending floor."""
    building = await get_building(session, building_id, organization_id)
    storage_path = floor_storage_path(organization_id, str(uuid.uuid4()))
    _write_file(UPLOAD_DIR, storage_path, content)

    size = probe_source_page(content)
    floor = AutoplanFloor(
        building_id=building.id,
        uploaded_by=uploaded_by,
        floor_number=floor_number,
        floor_name=floor_name,
        storage_path=storage_path,
        original_filename=original_filename,
        file_size_bytes=len(content),
        page_width_px=size[0] if size else None,
        page_height_px=size[1] if size else None,
        ai_analysis_status=FloorAnalysisStatus.PENDING.value,
    )
    session.add(floor)
    await session.flush()
    _audit(session, "floor", floor.id, "uploaded", building.id, uploaded_by,
           {"original_filename": original_filename, "file_size_bytes": len(content)})
    return floor


async def get_floor(session: AsyncSession, floor_id: str) -> AutoplanFloor:
    result = await session.execute(
        select(AutoplanFloor)
        .options(selectinload(AutoplanFloor.building))
        .where(AutoplanFloor.id == floor_id)
    )
    floor = result.scalar_one_or_none()
    if floor is None:
        raise FloorNotFoundError("Floor not found")
    return floor


async def run_floor_analysis(
    session: AsyncSession,
    floor_id: str,
    pdf_bytes: Optional[bytes] = None,
    analyze: AnalyzeFn = analyze_floor_plan,
    performed_by: Optional[str] = None,
) -> AIAnalysisResult:
    """
    Drive one floor through analysis. Commits at each status change so the
    floor's progress is visible to other sessions. On failure the floor is
    marked failed with the error text and the exception re-raised.
    """
    floor = await get_floor(session, floor_id)
    floor.ai_analysis_status = check_floor_transition(
        floor.ai_analysis_status, FloorAnalysisStatus.ANALYZING
    ).value
    await session.commit()

    building = Building.model_validate(floor.building)
    try:
        if pdf_bytes is None:
            pdf_bytes = read_floor_pdf(floor.storage_path)
        result = await analyze(pdf_bytes, building)
    except Exception as e:
        floor.ai_analysis_status = check_floor_transition(
            floor.ai_analysis_status, FloorAnalysisStatus.FAILED
        ).value
        floor.ai_error = str(e)
        await session.commit()
        logger.error(f"Floor analysis failed: {e}", extra={"floor_id": floor_id})
        raise

    floor.ai_analysis_status = check_floor_transition(
        floor.ai_analysis_status, FloorAnalysisStatus.COMPLETED
    ).value
    floor.ai_analysis_result = result.model_dump(mode="json", by_alias=True)
    floor.ai_confidence = result.confidence
    if result.scale and not floor.scale:
        floor.scale = result.scale
    _audit(session, "floor", floor.id, "ai_analyzed", floor.building_id, performed_by, {
        "confidence": result.confidence,
        "symbols_suggested": len(result.suggested_symbols),
        "warnings": len(result.warnings),
    })
    await session.commit()
    return result


# ── Plans ─────────────────────────────────────────────────────────────────────

async def get_plan(session: AsyncSession, plan_id: str, organization_id: str) -> AutoplanPlan:
    result = await session.execute(
        select(AutoplanPlan).where(
            AutoplanPlan.id == plan_id,
            AutoplanPlan.organization_id == organization_id,
        )
    )
    plan = result.scalar_one_or_none()
    if plan is None:
        raise PlanNotFoundError("Plan not found")
    return plan


async def create_plan(
    session: AsyncSession,
    floor_id: str,
    organization_id: str,
    created_by: Optional[str] = None,
) -> AutoplanPlan:
    """Version 1 draft for a floor, seeded with the floor's AI symbol suggestions."""
    floor = await get_floor(session, floor_id)
    if floor.building.organization_id != organization_id:
        raise OrganizationAccessError("Forbidden")

    # Revisions share their plan's reference, so count lineages, not rows
    count = await session.scalar(
        select(func.count(func.distinct(AutoplanPlan.plan_reference))).where(
            AutoplanPlan.organization_id == organization_id
        )
    )
    suggestions = (floor.ai_analysis_result or {}).get("suggested_symbols", [])
    plan = AutoplanPlan(
        floor_id=floor.id,
        building_id=floor.building_id,
        organization_id=organization_id,
        created_by=created_by,
        plan_reference=next_plan_reference(count or 0),
        version=1,
        status=PlanStatus.DRAFT.value,
        symbol_data=seed_symbols(suggestions),
        annotations=[],
    )
    session.add(plan)
    await session.flush()
    _audit(session, "plan", plan.id, "created", floor.building_id, created_by, {
        "plan_reference": plan.plan_reference,
        "symbols_seeded": len(plan.symbol_data),
    })
    logger.info(f"Plan {plan.plan_reference} created for floor {floor.id}", extra={"plan_id": plan.id})
    return plan


async def revise_plan(
    session: AsyncSession,
    plan_id: str,
    organization_id: str,
    revision: PlanRevision,
    revised_by: Optional[str] = None,
) -> AutoplanPlan:
    """Insert the next version of the plan on its floor; the source row is superseded."""
    source = await get_plan(session, plan_id, organization_id)
    if source.status == PlanStatus.SUPERSEDED.value:
        raise PlanStateError(f"Cannot edit a plan with status: {source.status}")

    latest = await session.scalar(
        select(func.max(AutoplanPlan.version)).where(
            AutoplanPlan.floor_id == source.floor_id,
            AutoplanPlan.plan_reference == source.plan_reference,
        )
    )

    symbol_data = (
        [s.model_dump(by_alias=True, exclude_none=True) for s in revision.symbol_data]
        if revision.symbol_data is not None else list(source.symbol_data or [])
    )
    annotations = (
        [a.model_dump(by_alias=True, exclude_none=True) for a in revision.annotations]
        if revision.annotations is not None else list(source.annotations or [])
    )
    viewport = (
        revision.canvas_viewport.model_dump(by_alias=True)
        if revision.canvas_viewport is not None else source.canvas_viewport
    )

    new_plan = AutoplanPlan(
        floor_id=source.floor_id,
        building_id=source.building_id,
        organization_id=source.organization_id,
        created_by=revised_by,
        plan_reference=source.plan_reference,
        version=(latest or source.version) + 1,
        status=PlanStatus.DRAFT.value,
        symbol_data=symbol_data,
        annotations=annotations,
        canvas_viewport=viewport,
    )
    source.status = check_plan_transition(source.status, PlanStatus.SUPERSEDED).value
    session.add(new_plan)
    await session.flush()
    _audit(session, "plan", new_plan.id, "revised", source.building_id, revised_by, {
        "plan_reference": source.plan_reference,
        "from_version": source.version,
        "to_version": new_plan.version,
    })
    return new_plan


async def submit_for_review(
    session: AsyncSession, plan_id: str, organization_id: str, submitted_by: Optional[str] = None
) -> AutoplanPlan:
    plan = await get_plan(session, plan_id, organization_id)
    try:
        plan.status = check_plan_transition(plan.status, PlanStatus.REVIEW).value
    except InvalidStatusTransition as e:
        raise PlanStateError(str(e)) from e
    _audit(session, "plan", plan.id, "submitted_for_review", plan.building_id, submitted_by,
           {"plan_reference": plan.plan_reference})
    await session.flush()
    return plan


async def approve_plan(
    session: AsyncSession,
    plan_id: str,
    organization_id: str,
    request: ApprovalRequest,
    approved_by: Optional[str] = None,
) -> AutoplanApproval:
    """Record a competent person's sign-off and move the plan to approved."""
    checklist = validate_approval_request(request)
    plan = await get_plan(session, plan_id, organization_id)
    if plan.status == PlanStatus.APPROVED.value:
        raise PlanStateError("Plan is already approved")
    try:
        plan.status = check_plan_transition(plan.status, PlanStatus.APPROVED).value
    except InvalidStatusTransition as e:
        raise PlanStateError(f"Cannot approve a plan with status: {plan.status}") from e

    approval = AutoplanApproval(
        plan_id=plan.id,
        approved_by=approved_by,
        approver_name=request.approver_name,
        approver_qualifications=request.approver_qualifications,
        approver_company=request.approver_company,
        attestation=attestation_text(request.approver_name, plan.plan_reference),
        checklist_results=checklist.model_dump(),
    )
    session.add(approval)
    await session.flush()
    _audit(session, "plan", plan.id, "approved", plan.building_id, approved_by, {
        "approver_name": request.approver_name,
        "approver_company": request.approver_company,
        "plan_reference": plan.plan_reference,
    })
    logger.info(f"Plan {plan.plan_reference} v{plan.version} approved by {request.approver_name}",
                extra={"plan_id": plan.id})
    return approval


# ── Rendering ─────────────────────────────────────────────────────────────────

async def load_plan_bundle(session: AsyncSession, plan_id: str, organization_id: str) -> PlanBundle:
    result = await session.execute(
        select(AutoplanPlan)
        .options(selectinload(AutoplanPlan.floor), selectinload(AutoplanPlan.building))
        .where(AutoplanPlan.id == plan_id, AutoplanPlan.organization_id == organization_id)
    )
    plan = result.scalar_one_or_none()
    if plan is None:
        raise PlanNotFoundError("Plan not found")

    approval_row = await session.scalar(
        select(AutoplanApproval)
        .where(AutoplanApproval.plan_id == plan.id)
        .order_by(AutoplanApproval.approved_at.desc())
        .limit(1)
    )
    return PlanBundle(
        plan=Plan.model_validate(plan),
        building=Building.model_validate(plan.building),
        floor=Floor.model_validate(plan.floor),
        approval=Approval.model_validate(approval_row) if approval_row is not None else None,
    )


async def export_plan_pdf(
    session: AsyncSession,
    plan_id: str,
    organization_id: str,
    floor_plan_pdf: Optional[bytes] = None,
    issued_on: Optional[date] = None,
) -> tuple[str, bytes]:
    """Render the plan, write it under DOWNLOAD_DIR and record path and size on the plan."""
    bundle = await load_plan_bundle(session, plan_id, organization_id)
    if floor_plan_pdf is None:
        try:
            floor_plan_pdf = read_floor_pdf(bundle.floor.storage_path)
        except OSError as e:
            logger.warning(f"Floor plan file missing for {bundle.plan.plan_reference}: {e}")
            floor_plan_pdf = b""

    pdf_bytes = render_plan_pdf(
        bundle.plan, bundle.building, bundle.floor, floor_plan_pdf,
        approval=bundle.approval, issued_on=issued_on,
    )
    relative_path = (
        f"autoplan/{organization_id}/exports/"
        f"{bundle.plan.plan_reference}-v{bundle.plan.version}.pdf"
    )
    _write_file(DOWNLOAD_DIR, relative_path, pdf_bytes)

    plan = await get_plan(session, plan_id, organization_id)
    plan.final_pdf_path = relative_path
    plan.final_pdf_size = len(pdf_bytes)
    _audit(session, "plan", plan.id, "exported", plan.building_id, None,
           {"path": relative_path, "size": len(pdf_bytes)})
    await session.flush()
    return relative_path, pdf_bytes
