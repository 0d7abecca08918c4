"""
Golden Thread API routes — BSA 2022 handover packages.

POST /api/v1/golden-thread/generate                      — admin: queue package generation (202)
POST /api/v1/golden-thread/preview                       — compile + validate without a package
GET  /api/v1/golden-thread/packages/{id}                 — package status and compliance result
GET  /api/v1/golden-thread/packages/{id}/audit           — package audit entries
GET  /api/v1/golden-thread/packages/{id}/download        — ?format=json|csv|pdf
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bluebook.api.deps import Principal, get_current_principal, get_organization_id, require_admin
from bluebook.db import get_db
from bluebook.models.golden_thread_schema import to_dict
from bluebook.models.orm_models import GoldenThreadAudit
from bluebook.services.golden_thread import package_service
from bluebook.services.golden_thread.compiler import ProjectNotFoundError

router = APIRouter(prefix="/api/v1/golden-thread", tags=["Golden Thread"])
logger = logging.getLogger("bluebook-api.golden-thread")


class GenerateRequest(BaseModel):
    project_id: str
    building_reference: Optional[str] = None
    export_format: str = "all"
    notes: Optional[str] = None


class PreviewRequest(BaseModel):
    project_id: str
    building_reference: Optional[str] = None


def _package_out(pkg) -> dict:
    return {
        "id": pkg.id,
        "project_id": pkg.project_id,
        "package_reference": pkg.package_reference,
        "building_reference": pkg.building_reference,
        "status": pkg.status,
        "export_format": pkg.export_format,
        "section_88_compliant": pkg.section_88_compliant,
        "section_91_compliant": pkg.section_91_compliant,
        "compliance_score": pkg.compliance_score,
        "validation_warnings": pkg.validation_warnings or [],
        "error_message": pkg.error_message,
        "created_at": pkg.created_at.isoformat() if pkg.created_at else None,
        "completed_at": pkg.completed_at.isoformat() if pkg.completed_at else None,
    }


def _raise_http(e: Exception):
    if isinstance(e, (ProjectNotFoundError, package_service.PackageNotFoundError)):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (package_service.UnsupportedExportFormat, package_service.PackageNotReadyError)):
        raise HTTPException(status_code=400, detail=str(e))
    raise e


@router.post("/generate", status_code=202)
async def generate_package(
    body: GenerateRequest,
    admin: Principal = Depends(require_admin),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        package = await package_service.create_package(
            db,
            body.project_id,
            organization_id,
            admin.user_id,
            building_reference=body.building_reference,
            export_format=body.export_format,
            notes=body.notes,
        )
    except Exception as e:
        _raise_http(e)
    await db.commit()

    from bluebook.workers.tasks import generate_golden_thread_package_task
    task = generate_golden_thread_package_task.delay(package.id)
    return {"package": _package_out(package), "task_id": task.id}


@router.post("/preview")
async def preview_package(
    body: PreviewRequest,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        data, validation = await package_service.preview_validation(
            db, body.project_id, organization_id, body.building_reference
        )
    except Exception as e:
        _raise_http(e)
    return {"metadata": to_dict(data.metadata), "validation": to_dict(validation)}


@router.get("/packages/{package_id}")
async def get_package(
    package_id: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        package = await package_service.get_package(db, package_id, organization_id)
    except Exception as e:
        _raise_http(e)
    return {"package": _package_out(package)}


@router.get("/packages/{package_id}/audit")
async def get_package_audit(
    package_id: str,
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        package = await package_service.get_package(db, package_id, organization_id)
    except Exception as e:
        _raise_http(e)
    rows = (await db.execute(
        select(GoldenThreadAudit)
        .where(GoldenThreadAudit.package_id == package.id)
        .order_by(GoldenThreadAudit.performed_at.asc())
    )).scalars().all()
    return {
        "audit": [
            {
                "action": a.action,
                "performed_by": a.performed_by,
                "performed_at": a.performed_at.isoformat() if a.performed_at else None,
                "details": a.details or {},
            }
            for a in rows
        ]
    }


@router.get("/packages/{package_id}/download")
async def download_package(
    package_id: str,
    format: str = "json",
    principal: Principal = Depends(get_current_principal),
    organization_id: str = Depends(get_organization_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        filename, content = await package_service.open_artifact(
            db, package_id, organization_id, format, principal.user_id
        )
    except Exception as e:
        _raise_http(e)
    return Response(
        content=content,
        media_type=package_service.CONTENT_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
