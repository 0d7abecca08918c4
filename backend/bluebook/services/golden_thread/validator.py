"""
Golden Thread Validator — Building Safety Act 2022 Section 88 / 91 checks.

Section 88: structured records of fire safety design and installation
  (quotes, product specifications, regulation links, certificates, files).
Section 91: a complete digital audit trail
  (structured format, quotes → products → regulations traceability, building
  reference, change history).

Every check carries equal weight; score = round-half-up(100 · passed / total).
Pure function of its input.
"""
import math

from bluebook.models.golden_thread_schema import (
    GoldenThreadData,
    ValidationResult,
    ValidationWarning,
)


class _Checklist:
    def __init__(self):
        self.total = 0
        self.passed = 0
        self.warnings: list[ValidationWarning] = []

    def check(self, ok: bool):
        self.total += 1
        if ok:
            self.passed += 1

    def warn(self, severity: str, code: str, message: str, section: str):
        self.warnings.append(ValidationWarning(severity=severity, code=code, message=message, section=section))

    def has_error(self, section: str) -> bool:
        return any(w.section == section and w.severity == "error" for w in self.warnings)

    @property
    def score(self) -> int:
        if self.total == 0:
            return 0
        return int(math.floor(100 * self.passed / self.total + 0.5))


def validate_golden_thread(data: GoldenThreadData) -> ValidationResult:
    checks = _Checklist()
    products = data.products
    n_products = len(products)

    # ── Section 88: design & installation records ────────────────────────────
    if not data.quotes:
        checks.warn("error", "S88_NO_QUOTES",
                    "No quotations found for this project. Section 88 requires design/scope records.", "s88")
    checks.check(bool(data.quotes))

    if not products:
        checks.warn("error", "S88_NO_PRODUCTS",
                    "No fire safety products found. Section 88 requires product specifications.", "s88")
        checks.check(False)
    else:
        checks.check(True)
        # Specification completeness is only assessed when products exist
        missing_specs = sum(1 for p in products if not p.specifications)
        if missing_specs:
            checks.warn("warning", "S88_MISSING_SPECS",
                        f"{missing_specs} product(s) have no specifications. "
                        f"Complete specifications improve Section 88 compliance.", "s88")
        checks.check(missing_specs == 0)

    with_regs = sum(1 for p in products if p.regulations)
    if with_regs == 0 and n_products > 0:
        checks.warn("error", "S88_NO_REGULATION_LINKS",
                    "No products are linked to regulations. "
                    "Section 88 requires regulatory compliance records.", "s88")
        checks.check(False)
    else:
        if with_regs < n_products:
            # Partial linkage still passes the check
            checks.warn("warning", "S88_PARTIAL_REGULATION_LINKS",
                        f"{n_products - with_regs} product(s) have no linked regulations. "
                        f"Link all products to relevant standards.", "s88")
        checks.check(True)

    with_certs = sum(
        1 for p in products
        if p.certifications or any(f.file_type == "certificate" for f in p.files)
    )
    no_certs = with_certs == 0 and n_products > 0
    if no_certs:
        checks.warn("warning", "S88_NO_CERTIFICATES",
                    "No product certifications or test evidence found. "
                    "Upload certificates for full compliance.", "s88")
    checks.check(not no_certs)

    no_files = data.metadata.total_files == 0 and n_products > 0
    if no_files:
        checks.warn("warning", "S88_NO_FILES",
                    "No product files uploaded. Include datasheets and installation guides for Section 88.", "s88")
    checks.check(not no_files)

    section_88 = not checks.has_error("s88")

    # ── Section 91: digital audit trail ──────────────────────────────────────
    # Structured data: satisfied by construction
    checks.check(True)

    traceable = bool(data.quotes) and bool(products) and bool(data.regulations_summary)
    if not traceable:
        checks.warn("warning", "S91_INCOMPLETE_CHAIN",
                    "Incomplete traceability chain. Full compliance requires "
                    "quotes → products → regulations linkage.", "s91")
    checks.check(traceable)

    if not data.project.building_reference:
        checks.warn("info", "S91_NO_BUILDING_REF",
                    "No building reference set. Add a building reference for "
                    "higher-risk building identification.", "s91")
    checks.check(bool(data.project.building_reference))

    if not data.audit_trail:
        checks.warn("info", "S91_NO_AUDIT_HISTORY",
                    "No prior audit trail entries. This is normal for the first package generation.", "s91")
    # First generation passes
    checks.check(True)

    section_91 = not checks.has_error("s91")

    return ValidationResult(
        section_88_compliant=section_88,
        section_91_compliant=section_91,
        audit_trail_complete=section_91 and traceable,
        warnings=list(checks.warnings),
        score=checks.score,
    )
