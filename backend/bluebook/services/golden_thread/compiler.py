"""
Golden Thread Compiler — aggregates one project's records into GoldenThreadData.

Query sequence (reads only):
  1. project
  2. quotes + line items, newest first
  3. products referenced by those line items, one batch, with manufacturer,
     regulation links and files
  4. audit entries of earlier packages for the project, oldest first

Any database error propagates; the result is never partial.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bluebook.models.golden_thread_schema import (
    AuditEntry,
    CompiledLineItem,
    CompiledProduct,
    CompiledQuote,
    GoldenThreadData,
    PackageMetadata,
    ProductFileRef,
    ProjectIdentity,
    RegulationLink,
    RegulationSummary,
)
from bluebook.models.orm_models import (
    GoldenThreadAudit,
    GoldenThreadPackage,
    Product,
    ProductRegulation,
    Project,
    Quote,
)
from bluebook.services.perf_monitor import timed_async

logger = logging.getLogger("bluebook-golden-thread")


class ProjectNotFoundError(LookupError):
    pass


def iso_timestamp(value: Optional[datetime]) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def summarize_regulations(products: list[CompiledProduct]) -> list[RegulationSummary]:
    """
    One entry per distinct regulation id in first-seen order. The first
    occurrence fixes name/reference/category; products_count is the number
    of distinct products citing it.
    """
    seen: dict[str, dict] = {}
    for product in products:
        cited = set()
        for reg in product.regulations:
            if reg.regulation_id in cited:
                continue
            cited.add(reg.regulation_id)
            entry = seen.get(reg.regulation_id)
            if entry:
                entry["products_count"] += 1
            else:
                seen[reg.regulation_id] = {
                    "name": reg.name,
                    "reference": reg.reference,
                    "category": reg.category,
                    "products_count": 1,
                }
    return [RegulationSummary(regulation_id=rid, **entry) for rid, entry in seen.items()]


def _compile_quote(quote: Quote) -> CompiledQuote:
    return CompiledQuote(
        quote_id=quote.id,
        quote_number=quote.quote_number,
        client_name=quote.client_name or "",
        project_name=quote.project_name,
        status=quote.status,
        total=float(quote.total or 0),
        created_at=iso_timestamp(quote.created_at),
        line_items=[
            CompiledLineItem(
                description=li.description or "",
                quantity=li.quantity,
                unit_price=li.unit_price,
                line_total=li.line_total,
                product_id=li.product_id,
                product_code=li.product_code,
            )
            for li in quote.line_items
        ],
    )


def _compile_product(product: Product) -> CompiledProduct:
    return CompiledProduct(
        product_id=product.id,
        product_name=product.product_name,
        product_code=product.product_code or "",
        pillar=product.pillar or "",
        manufacturer_name=product.manufacturer.name if product.manufacturer else "",
        specifications=dict(product.specifications or {}),
        certifications=list(product.certifications or []),
        regulations=[
            RegulationLink(
                regulation_id=link.regulation_id,
                name=link.regulation.name if link.regulation else "",
                reference=link.regulation.reference if link.regulation else "",
                category=link.regulation.category if link.regulation else "",
                compliance_notes=link.compliance_notes,
                test_evidence_ref=link.test_evidence_ref,
            )
            for link in product.regulation_links
        ],
        files=[
            ProductFileRef(
                file_id=f.id,
                file_name=f.file_name,
                file_type=f.file_type,
                file_url=f.file_url,
            )
            for f in product.files
        ],
    )


@timed_async
async def compile_golden_thread_data(
    session: AsyncSession,
    project_id: str,
    organization_id: str,
    package_reference: str,
    building_reference: Optional[str] = None,
) -> GoldenThreadData:
    # 1. Project
    project = await session.scalar(
        select(Project).where(Project.id == project_id, Project.organization_id == organization_id)
    )
    if project is None:
        raise ProjectNotFoundError("Project not found")

    # 2. Quotes with line items
    quote_rows = (await session.execute(
        select(Quote)
        .options(selectinload(Quote.line_items))
        .where(Quote.project_id == project_id, Quote.organization_id == organization_id)
        .order_by(Quote.created_at.desc())
    )).scalars().all()
    quotes = [_compile_quote(q) for q in quote_rows]

    # 3. Distinct product ids, first-seen order, then one batch fetch
    product_ids = list(dict.fromkeys(
        li.product_id for q in quotes for li in q.line_items if li.product_id
    ))
    products: list[CompiledProduct] = []
    if product_ids:
        product_rows = (await session.execute(
            select(Product)
            .options(
                selectinload(Product.manufacturer),
                selectinload(Product.regulation_links).selectinload(ProductRegulation.regulation),
                selectinload(Product.files),
            )
            .where(Product.id.in_(product_ids))
        )).scalars().all()
        position = {pid: i for i, pid in enumerate(product_ids)}
        products = [
            _compile_product(p) for p in sorted(product_rows, key=lambda p: position[p.id])
        ]

    regulations_summary = summarize_regulations(products)

    # 4. Audit history of earlier packages
    audit_rows = (await session.execute(
        select(GoldenThreadAudit)
        .join(GoldenThreadPackage, GoldenThreadAudit.package_id == GoldenThreadPackage.id)
        .where(GoldenThreadPackage.project_id == project_id)
        .order_by(GoldenThreadAudit.performed_at.asc())
    )).scalars().all()
    audit_trail = [
        AuditEntry(
            action=a.action,
            performed_by=a.performed_by,
            performed_at=iso_timestamp(a.performed_at),
            details=dict(a.details or {}),
        )
        for a in audit_rows
    ]

    data = GoldenThreadData(
        package_reference=package_reference,
        project=ProjectIdentity(
            id=project.id,
            name=project.name,
            organization_id=project.organization_id,
            building_reference=building_reference or None,
        ),
        quotes=quotes,
        products=products,
        regulations_summary=regulations_summary,
        audit_trail=audit_trail,
        compiled_at=iso_timestamp(datetime.now(timezone.utc)),
        metadata=PackageMetadata(
            total_products=len(products),
            total_quotes=len(quotes),
            total_regulations=len(regulations_summary),
            total_files=sum(len(p.files) for p in products),
        ),
    )
    logger.info(
        f"Compiled {package_reference}: {len(quotes)} quotes, {len(products)} products, "
        f"{len(regulations_summary)} regulations, {len(audit_trail)} audit entries"
    )
    return data
