"""ORM Models for hf.bluebook — SQLAlchemy 2.0"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Integer, Float, Numeric, DateTime,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from bluebook.db import Base


def gen_uuid():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


# ── PROJECTS & QUOTES ─────────────────────────────────────────────────────────
class Project(Base):
    __tablename__ = "projects"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    quotes: Mapped[list["Quote"]] = relationship("Quote", back_populates="project")


class Quote(Base):
    __tablename__ = "quotes"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(String(36), ForeignKey("projects.id"), nullable=False)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    quote_number: Mapped[str] = mapped_column(String(50), nullable=False)
    client_name: Mapped[str] = mapped_column(String(255), default="")
    project_name: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(50), default="draft")  # draft | sent | accepted | declined
    total: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), default=Decimal("0.00"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    project: Mapped["Project"] = relationship("Project", back_populates="quotes")
    line_items: Mapped[list["QuoteLineItem"]] = relationship(
        "QuoteLineItem", back_populates="quote", order_by="QuoteLineItem.sort_order"
    )


class QuoteLineItem(Base):
    __tablename__ = "quote_line_items"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    quote_id: Mapped[str] = mapped_column(String(36), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("products.id"))
    product_code: Mapped[Optional[str]] = mapped_column(String(100))
    description: Mapped[str] = mapped_column(Text, default="")
    quantity: Mapped[float] = mapped_column(Float, default=1.0)
    unit_price: Mapped[float] = mapped_column(Float, default=0.0)
    line_total: Mapped[float] = mapped_column(Float, default=0.0)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    quote: Mapped["Quote"] = relationship("Quote", back_populates="line_items")


# ── PRODUCT CATALOGUE ─────────────────────────────────────────────────────────
class Manufacturer(Base):
    __tablename__ = "manufacturers"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Product(Base):
    __tablename__ = "products"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    manufacturer_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("manufacturers.id"))
    product_code: Mapped[Optional[str]] = mapped_column(String(100))
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    pillar: Mapped[str] = mapped_column(String(50), default="")  # fire_doors | fire_stopping | ...
    specifications: Mapped[Optional[dict]] = mapped_column(JSONB, default=dict)
    certifications: Mapped[Optional[list]] = mapped_column(JSONB, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    manufacturer: Mapped[Optional["Manufacturer"]] = relationship("Manufacturer")
    regulation_links: Mapped[list["ProductRegulation"]] = relationship(
        "ProductRegulation", back_populates="product"
    )
    files: Mapped[list["ProductFile"]] = relationship("ProductFile", back_populates="product")


class Regulation(Base):
    __tablename__ = "regulations"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    reference: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(50), default="")


class ProductRegulation(Base):
    __tablename__ = "product_regulations"
    __table_args__ = (UniqueConstraint("product_id", "regulation_id"),)
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    regulation_id: Mapped[str] = mapped_column(String(36), ForeignKey("regulations.id"), nullable=False)
    compliance_notes: Mapped[Optional[str]] = mapped_column(Text)
    test_evidence_ref: Mapped[Optional[str]] = mapped_column(String(255))
    product: Mapped["Product"] = relationship("Product", back_populates="regulation_links")
    regulation: Mapped["Regulation"] = relationship("Regulation")


class ProductFile(Base):
    __tablename__ = "product_files"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(50), default="datasheet")  # datasheet | certificate | installation_guide
    file_url: Mapped[Optional[str]] = mapped_column(Text)
    product: Mapped["Product"] = relationship("Product", back_populates="files")


# ── GOLDEN THREAD ─────────────────────────────────────────────────────────────
class GoldenThreadPackage(Base):
    __tablename__ = "golden_thread_packages"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    project_id: Mapped[str] = mapped_column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    package_reference: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    building_reference: Mapped[Optional[str]] = mapped_column(String(100))
    generated_by: Mapped[Optional[str]] = mapped_column(String(36))
    status: Mapped[str] = mapped_column(String(20), default="processing")  # processing | completed | failed
    export_format: Mapped[str] = mapped_column(String(10), default="all")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    section_88_compliant: Mapped[Optional[bool]] = mapped_column(Boolean)
    section_91_compliant: Mapped[Optional[bool]] = mapped_column(Boolean)
    compliance_score: Mapped[Optional[int]] = mapped_column(Integer)
    validation_warnings: Mapped[Optional[list]] = mapped_column(JSONB)
    json_path: Mapped[Optional[str]] = mapped_column(Text)
    csv_path: Mapped[Optional[str]] = mapped_column(Text)
    pdf_path: Mapped[Optional[str]] = mapped_column(Text)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    audit_entries: Mapped[list["GoldenThreadAudit"]] = relationship(
        "GoldenThreadAudit", back_populates="package"
    )


class GoldenThreadAudit(Base):
    __tablename__ = "golden_thread_audit"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    package_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("golden_thread_packages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    performed_by: Mapped[str] = mapped_column(String(36), default="system")
    performed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    details: Mapped[Optional[dict]] = mapped_column(JSONB, default=dict)
    package: Mapped["GoldenThreadPackage"] = relationship("GoldenThreadPackage", back_populates="audit_entries")


# ── AUTOPLAN ──────────────────────────────────────────────────────────────────
class AutoplanBuilding(Base):
    __tablename__ = "autoplan_buildings"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line_1: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line_2: Mapped[Optional[str]] = mapped_column(String(255))
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    postcode: Mapped[str] = mapped_column(String(20), nullable=False)
    jurisdiction: Mapped[str] = mapped_column(String(20), default="england")  # england | scotland | wales
    height_metres: Mapped[Optional[float]] = mapped_column(Float)
    number_of_storeys: Mapped[int] = mapped_column(Integer, default=1)
    building_use: Mapped[str] = mapped_column(String(50), default="residential_high_rise")
    evacuation_strategy: Mapped[str] = mapped_column(String(50), default="stay_put")
    has_sprinklers: Mapped[bool] = mapped_column(Boolean, default=False)
    has_dry_riser: Mapped[bool] = mapped_column(Boolean, default=False)
    has_wet_riser: Mapped[bool] = mapped_column(Boolean, default=False)
    number_of_firefighting_lifts: Mapped[int] = mapped_column(Integer, default=0)
    responsible_person: Mapped[Optional[str]] = mapped_column(String(255))
    rp_contact_email: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    floors: Mapped[list["AutoplanFloor"]] = relationship("AutoplanFloor", back_populates="building")


class AutoplanFloor(Base):
    __tablename__ = "autoplan_floors"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    building_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("autoplan_buildings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    uploaded_by: Mapped[Optional[str]] = mapped_column(String(36))
    floor_number: Mapped[int] = mapped_column(Integer, default=0)
    floor_name: Mapped[Optional[str]] = mapped_column(String(100))
    storage_path: Mapped[str] = mapped_column(Text, nullable=False)
    original_filename: Mapped[str] = mapped_column(String(255), default="")
    file_size_bytes: Mapped[int] = mapped_column(Integer, default=0)
    page_width_px: Mapped[Optional[float]] = mapped_column(Float)
    page_height_px: Mapped[Optional[float]] = mapped_column(Float)
    scale: Mapped[Optional[str]] = mapped_column(String(20))
    ai_analysis_status: Mapped[str] = mapped_column(String(20), default="pending")
    ai_analysis_result: Mapped[Optional[dict]] = mapped_column(JSONB)
    ai_confidence: Mapped[Optional[float]] = mapped_column(Float)
    ai_error: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    building: Mapped["AutoplanBuilding"] = relationship("AutoplanBuilding", back_populates="floors")


class AutoplanPlan(Base):
    """One immutable-history version of a fire safety plan; edits insert a new row."""
    __tablename__ = "autoplan_plans"
    __table_args__ = (
        UniqueConstraint(
            "floor_id", "plan_reference", "version", name="uq_autoplan_plan_floor_reference_version"
        ),
        Index("ix_autoplan_plans_org", "organization_id"),
    )
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    floor_id: Mapped[str] = mapped_column(String(36), ForeignKey("autoplan_floors.id", ondelete="CASCADE"), nullable=False)
    building_id: Mapped[str] = mapped_column(String(36), ForeignKey("autoplan_buildings.id"), nullable=False)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(36))
    plan_reference: Mapped[str] = mapped_column(String(20), nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1)
    status: Mapped[str] = mapped_column(String(20), default="draft")  # draft | review | approved | superseded
    symbol_data: Mapped[list] = mapped_column(JSONB, default=list)
    annotations: Mapped[list] = mapped_column(JSONB, default=list)
    canvas_viewport: Mapped[Optional[dict]] = mapped_column(JSONB)
    final_pdf_path: Mapped[Optional[str]] = mapped_column(Text)
    final_pdf_size: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    floor: Mapped["AutoplanFloor"] = relationship("AutoplanFloor")
    building: Mapped["AutoplanBuilding"] = relationship("AutoplanBuilding")
    approvals: Mapped[list["AutoplanApproval"]] = relationship(
        "AutoplanApproval", back_populates="plan", order_by="AutoplanApproval.approved_at"
    )


class AutoplanApproval(Base):
    __tablename__ = "autoplan_approvals"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    plan_id: Mapped[str] = mapped_column(String(36), ForeignKey("autoplan_plans.id", ondelete="CASCADE"), nullable=False)
    approved_by: Mapped[Optional[str]] = mapped_column(String(36))
    approver_name: Mapped[str] = mapped_column(String(255), nullable=False)
    approver_qualifications: Mapped[str] = mapped_column(String(255), nullable=False)
    approver_company: Mapped[str] = mapped_column(String(255), nullable=False)
    attestation: Mapped[str] = mapped_column(Text, nullable=False)
    checklist_results: Mapped[dict] = mapped_column(JSONB, nullable=False)
    approved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    plan: Mapped["AutoplanPlan"] = relationship("AutoplanPlan", back_populates="approvals")


class AutoplanAuditLog(Base):
    __tablename__ = "autoplan_audit_log"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=gen_uuid)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)  # floor | plan
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    building_id: Mapped[Optional[str]] = mapped_column(String(36))
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    performed_by: Mapped[Optional[str]] = mapped_column(String(36))
    details: Mapped[Optional[dict]] = mapped_column(JSONB, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
