"""
Golden Thread Package Service — package records, artifact generation, audit.

Lifecycle: create_package() inserts a `processing` package with a "generated"
audit entry; generate_package() (normally from the Celery worker) compiles,
validates, writes the requested artifacts under DOWNLOAD_DIR and marks the
package `completed`, or `failed` with the error text.
"""
from __future__ import annotations

import logging
import os
import random
import string
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bluebook.config import DOWNLOAD_DIR, EXPORT_FORMATS, PACKAGE_REFERENCE_PREFIX
from bluebook.models.golden_thread_schema import GoldenThreadData, ValidationResult, to_dict
from bluebook.models.orm_models import GoldenThreadAudit, GoldenThreadPackage, Project
from bluebook.services.golden_thread.compiler import ProjectNotFoundError, compile_golden_thread_data
from bluebook.services.golden_thread.exporters import (
    bundle_csvs,
    generate_golden_thread_csvs,
    generate_golden_thread_json,
)
from bluebook.services.golden_thread.pdf_renderer import generate_golden_thread_pdf
from bluebook.services.golden_thread.validator import validate_golden_thread

logger = logging.getLogger("bluebook-golden-thread")

_REF_ALPHABET = string.digits + string.ascii_uppercase

CONTENT_TYPES = {
    "json": "application/json",
    "pdf": "application/pdf",
    "csv": "application/zip",
}


class PackageNotFoundError(LookupError):
    pass


class UnsupportedExportFormat(ValueError):
    pass


class PackageNotReadyError(RuntimeError):
    pass


def make_package_reference(today: date, rng: Optional[random.Random] = None) -> str:
    """GT-YYYYMMDD-XXXX with four random base-36 characters."""
    rng = rng or random
    suffix = "".join(rng.choice(_REF_ALPHABET) for _ in range(4))
    return f"{PACKAGE_REFERENCE_PREFIX}-{today:%Y%m%d}-{suffix}"


def artifact_filename(package_reference: str, fmt: str) -> str:
    if fmt == "csv":
        return f"{package_reference}-csv.zip"
    return f"{package_reference}.{fmt}"


def build_package_artifacts(
    data: GoldenThreadData, validation: ValidationResult, export_format: str
) -> dict[str, bytes]:
    """format → bytes for every export the package format calls for."""
    if export_format not in EXPORT_FORMATS:
        raise UnsupportedExportFormat(f"Unsupported export format: {export_format}")
    wanted = ("json", "csv", "pdf") if export_format == "all" else (export_format,)

    artifacts: dict[str, bytes] = {}
    if "json" in wanted:
        artifacts["json"] = generate_golden_thread_json(data, validation).encode("utf-8")
    if "csv" in wanted:
        artifacts["csv"] = bundle_csvs(generate_golden_thread_csvs(data))
    if "pdf" in wanted:
        artifacts["pdf"] = generate_golden_thread_pdf(data, validation)
    return artifacts


def _audit(session: AsyncSession, package_id: str, action: str, performed_by: str, details: dict):
    session.add(GoldenThreadAudit(
        package_id=package_id,
        action=action,
        performed_by=performed_by or "system",
        details=details,
    ))


async def create_package(
    session: AsyncSession,
    project_id: str,
    organization_id: str,
    generated_by: str,
    building_reference: Optional[str] = None,
    export_format: str = "all",
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> GoldenThreadPackage:
    if export_format not in EXPORT_FORMATS:
        raise UnsupportedExportFormat(f"Unsupported export format: {export_format}")
    project = await session.scalar(
        select(Project).where(Project.id == project_id, Project.organization_id == organization_id)
    )
    if project is None:
        raise ProjectNotFoundError("Project not found")

    package = GoldenThreadPackage(
        project_id=project_id,
        organization_id=organization_id,
        package_reference=make_package_reference(today or datetime.now(timezone.utc).date()),
        building_reference=building_reference or None,
        generated_by=generated_by,
        status="processing",
        export_format=export_format,
        notes=notes or None,
    )
    session.add(package)
    await session.flush()
    _audit(session, package.id, "generated", generated_by,
           {"export_format": export_format, "trigger": "manual"})
    await session.flush()
    logger.info(f"Package {package.package_reference} queued for project {project_id}",
                extra={"package_id": package.id})
    return package


async def get_package(
    session: AsyncSession, package_id: str, organization_id: Optional[str] = None
) -> GoldenThreadPackage:
    stmt = select(GoldenThreadPackage).where(GoldenThreadPackage.id == package_id)
    if organization_id is not None:
        stmt = stmt.where(GoldenThreadPackage.organization_id == organization_id)
    package = await session.scalar(stmt)
    if package is None:
        raise PackageNotFoundError("Package not found")
    return package


def _write_artifact(relative_path: str, content: bytes):
    full_path = os.path.join(DOWNLOAD_DIR, relative_path)
    os.makedirs(os.path.dirname(full_path), exist_ok=True)
    with open(full_path, "wb") as f:
        f.write(content)


async def generate_package(session: AsyncSession, package_id: str) -> GoldenThreadPackage:
    """Compile → validate → export for one package. Commits its own outcome."""
    package = await get_package(session, package_id)
    try:
        data = await compile_golden_thread_data(
            session,
            package.project_id,
            package.organization_id,
            package.package_reference,
            package.building_reference,
        )
        validation = validate_golden_thread(data)
        artifacts = build_package_artifacts(data, validation, package.export_format)

        folder = f"golden-thread/{package.organization_id}/{package.package_reference}"
        files = []
        for fmt, content in artifacts.items():
            relative_path = f"{folder}/{artifact_filename(package.package_reference, fmt)}"
            _write_artifact(relative_path, content)
            setattr(package, f"{fmt}_path", relative_path)
            files.append({"format": fmt, "path": relative_path, "size": len(content)})
    except Exception as e:
        await session.rollback()
        package = await session.get(GoldenThreadPackage, package_id)
        package.status = "failed"
        package.error_message = str(e)
        package.completed_at = datetime.now(timezone.utc)
        _audit(session, package.id, "failed", "system", {"error": str(e)})
        await session.commit()
        logger.error(f"Package {package.package_reference} failed: {e}", extra={"package_id": package_id})
        raise

    package.section_88_compliant = validation.section_88_compliant
    package.section_91_compliant = validation.section_91_compliant
    package.compliance_score = validation.score
    package.validation_warnings = [to_dict(w) for w in validation.warnings]
    package.status = "completed"
    package.completed_at = datetime.now(timezone.utc)
    _audit(session, package.id, "completed", "system", {"score": validation.score, "files": files})
    await session.commit()
    logger.info(
        f"Package {package.package_reference} completed: score {validation.score}, "
        f"S88={'yes' if validation.section_88_compliant else 'no'}, "
        f"S91={'yes' if validation.section_91_compliant else 'no'}",
        extra={"package_id": package_id},
    )
    return package


def artifact_path(package: GoldenThreadPackage, fmt: str) -> Optional[str]:
    if fmt not in CONTENT_TYPES:
        raise UnsupportedExportFormat(f"Unsupported export format: {fmt}")
    return getattr(package, f"{fmt}_path")


async def open_artifact(
    session: AsyncSession, package_id: str, organization_id: str, fmt: str, accessed_by: str
) -> tuple[str, bytes]:
    """Read one completed artifact and log the access. Returns (filename, bytes)."""
    package = await get_package(session, package_id, organization_id)
    if package.status != "completed":
        raise PackageNotReadyError(f"Package not ready — status: {package.status}")
    relative_path = artifact_path(package, fmt)
    if not relative_path:
        raise PackageNotFoundError(f"No {fmt} export available")
    with open(os.path.join(DOWNLOAD_DIR, relative_path), "rb") as f:
        content = f.read()
    filename = os.path.basename(relative_path)
    _audit(session, package.id, "accessed", accessed_by, {"format": fmt, "file_name": filename})
    await session.flush()
    return filename, content


async def preview_validation(
    session: AsyncSession,
    project_id: str,
    organization_id: str,
    building_reference: Optional[str] = None,
) -> tuple[GoldenThreadData, ValidationResult]:
    """Compile and validate without creating a package."""
    data = await compile_golden_thread_data(
        session, project_id, organization_id, "PREVIEW", building_reference
    )
    return data, validate_golden_thread(data)
