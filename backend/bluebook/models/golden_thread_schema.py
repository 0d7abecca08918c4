"""
Golden Thread data model.

GoldenThreadData is rebuilt from the database on every compile and is never
persisted as-is. ValidationResult is a pure function of it.
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Optional


@dataclass(frozen=True)
class RegulationLink:
    regulation_id: str
    name: str
    reference: str
    category: str
    compliance_notes: Optional[str] = None
    test_evidence_ref: Optional[str] = None


@dataclass(frozen=True)
class ProductFileRef:
    file_id: str
    file_name: str
    file_type: str
    file_url: Optional[str] = None


@dataclass(frozen=True)
class CompiledProduct:
    product_id: str
    product_name: str
    product_code: str
    pillar: str
    manufacturer_name: str
    specifications: dict[str, Any] = field(default_factory=dict)
    certifications: list[str] = field(default_factory=list)
    regulations: list[RegulationLink] = field(default_factory=list)
    files: list[ProductFileRef] = field(default_factory=list)


@dataclass(frozen=True)
class CompiledLineItem:
    description: str
    quantity: float
    unit_price: float
    line_total: float
    product_id: Optional[str] = None
    product_code: Optional[str] = None


@dataclass(frozen=True)
class CompiledQuote:
    quote_id: str
    quote_number: str
    client_name: str
    project_name: Optional[str]
    status: str
    total: float
    created_at: str
    line_items: list[CompiledLineItem] = field(default_factory=list)


@dataclass(frozen=True)
class ProjectIdentity:
    id: str
    name: str
    organization_id: str
    building_reference: Optional[str] = None


@dataclass(frozen=True)
class RegulationSummary:
    regulation_id: str
    name: str
    reference: str
    category: str
    products_count: int


@dataclass(frozen=True)
class AuditEntry:
    action: str
    performed_by: str
    performed_at: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PackageMetadata:
    total_products: int
    total_quotes: int
    total_regulations: int
    total_files: int


@dataclass(frozen=True)
class GoldenThreadData:
    package_reference: str
    project: ProjectIdentity
    quotes: list[CompiledQuote]
    products: list[CompiledProduct]
    regulations_summary: list[RegulationSummary]
    audit_trail: list[AuditEntry]
    compiled_at: str
    metadata: PackageMetadata


# ── Validation ────────────────────────────────────────────────────────────────

SEVERITIES = ("error", "warning", "info")
SECTIONS = ("s88", "s91", "general")


@dataclass(frozen=True)
class ValidationWarning:
    severity: str   # error | warning | info
    code: str
    message: str
    section: str    # s88 | s91 | general

    def __post_init__(self):
        if self.severity not in SEVERITIES:
            raise ValueError(f"Unknown severity: {self.severity}")
        if self.section not in SECTIONS:
            raise ValueError(f"Unknown section: {self.section}")


@dataclass(frozen=True)
class ValidationResult:
    section_88_compliant: bool
    section_91_compliant: bool
    audit_trail_complete: bool
    warnings: list[ValidationWarning]
    score: int      # 0-100

    @property
    def error_codes(self) -> list[str]:
        return [w.code for w in self.warnings if w.severity == "error"]


def to_dict(obj) -> dict:
    """Serialize any of the dataclasses above to plain JSON-ready dicts."""
    return asdict(obj)
