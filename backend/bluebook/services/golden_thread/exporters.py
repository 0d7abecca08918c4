"""
Golden Thread export formatters — JSON document, CSV table set, ZIP bundle.
"""
import csv
import io
import json
import zipfile

from bluebook.config import GOLDEN_THREAD_SCHEMA_VERSION
from bluebook.models.golden_thread_schema import GoldenThreadData, ValidationResult, to_dict

PRODUCT_HEADERS = ["product_code", "product_name", "pillar", "manufacturer", "certifications", "regulations"]
REGULATION_HEADERS = ["reference", "name", "category", "products_covered"]
QUOTATION_HEADERS = ["quote_number", "client_name", "project_name", "status", "total", "items", "created_at"]
AUDIT_HEADERS = ["action", "performed_by", "performed_at", "details"]


def generate_golden_thread_json(data: GoldenThreadData, validation: ValidationResult) -> str:
    """Schema-versioned JSON handover document (2-space indent, UTF-8 text)."""
    output = {
        "schema_version": GOLDEN_THREAD_SCHEMA_VERSION,
        "bsa_2022_compliance": {
            "section_88_compliant": validation.section_88_compliant,
            "section_91_compliant": validation.section_91_compliant,
            "audit_trail_complete": validation.audit_trail_complete,
            "compliance_score": validation.score,
            "warnings": [to_dict(w) for w in validation.warnings],
        },
        "package": {
            "reference": data.package_reference,
            "generated_at": data.compiled_at,
            "building_reference": data.project.building_reference,
        },
        "project": {
            "id": data.project.id,
            "name": data.project.name,
        },
        "products": [
            {
                "product_code": p.product_code,
                "product_name": p.product_name,
                "pillar": p.pillar,
                "manufacturer": p.manufacturer_name,
                "specifications": p.specifications,
                "certifications": p.certifications,
                "applicable_regulations": [
                    {
                        "reference": r.reference,
                        "name": r.name,
                        "compliance_notes": r.compliance_notes,
                        "test_evidence_ref": r.test_evidence_ref,
                    }
                    for r in p.regulations
                ],
                "files": [{"name": f.file_name, "type": f.file_type} for f in p.files],
            }
            for p in data.products
        ],
        "regulations": [
            {
                "reference": r.reference,
                "name": r.name,
                "category": r.category,
                "products_covered": r.products_count,
            }
            for r in data.regulations_summary
        ],
        "quotations": [
            {
                "quote_number": q.quote_number,
                "client": q.client_name,
                "status": q.status,
                "total_gbp": q.total,
                "items": len(q.line_items),
            }
            for q in data.quotes
        ],
        "audit_trail": [to_dict(a) for a in data.audit_trail],
        "metadata": to_dict(data.metadata),
    }
    return json.dumps(output, indent=2, ensure_ascii=False, default=str)


def _to_csv(headers: list[str], rows: list[list]) -> str:
    # Minimal quoting; inner quotes doubled
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(headers)
    writer.writerows(rows)
    return buf.getvalue().removesuffix("\n")


def generate_golden_thread_csvs(data: GoldenThreadData) -> dict[str, str]:
    """filename → CSV text for the four flat tables."""
    csvs: dict[str, str] = {}

    csvs["products.csv"] = _to_csv(PRODUCT_HEADERS, [
        [
            p.product_code,
            p.product_name,
            p.pillar,
            p.manufacturer_name,
            "; ".join(p.certifications),
            "; ".join(r.reference for r in p.regulations),
        ]
        for p in data.products
    ])

    csvs["regulations.csv"] = _to_csv(REGULATION_HEADERS, [
        [r.reference, r.name, r.category, str(r.products_count)]
        for r in data.regulations_summary
    ])

    csvs["quotations.csv"] = _to_csv(QUOTATION_HEADERS, [
        [
            q.quote_number,
            q.client_name,
            q.project_name or "",
            q.status,
            f"{q.total or 0:.2f}",
            str(len(q.line_items)),
            q.created_at,
        ]
        for q in data.quotes
    ])

    csvs["audit_trail.csv"] = _to_csv(AUDIT_HEADERS, [
        [
            a.action,
            a.performed_by,
            a.performed_at,
            json.dumps(a.details, separators=(",", ":"), ensure_ascii=False, default=str),
        ]
        for a in data.audit_trail
    ])

    return csvs


def bundle_csvs(csvs: dict[str, str]) -> bytes:
    """ZIP the CSV set (deflated, entries in the given order)."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for filename, content in csvs.items():
            zf.writestr(filename, content.encode("utf-8"))
    return buf.getvalue()
