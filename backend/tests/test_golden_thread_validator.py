"""
test_golden_thread_validator.py — Tests for the BSA 2022 Section 88 / 91 checks.

Tests cover:
  - Empty project (no quotes, no products)
  - Each Section 88 check and its warning code/severity
  - Section 91 traceability, building reference and audit history
  - Score arithmetic (equal weights, round half up) and bounds
  - Determinism and the missing-specifications monotonicity rule
  - End-to-end compile -> validate against the seeded project

Pure unit tests except the last class, which uses the in-memory database.
"""

import pytest

from bluebook.models.golden_thread_schema import (
    AuditEntry,
    CompiledProduct,
    CompiledQuote,
    GoldenThreadData,
    PackageMetadata,
    ProductFileRef,
    ProjectIdentity,
    RegulationLink,
    ValidationWarning,
)
from bluebook.services.golden_thread.compiler import compile_golden_thread_data, summarize_regulations
from bluebook.services.golden_thread.validator import validate_golden_thread

from conftest import ORG_ID, seed_golden_thread_project

R1 = RegulationLink(regulation_id="r1", name="Fire doors", reference="BS 476-22", category="british_standard")
CERT = ProductFileRef(file_id="f1", file_name="cert.pdf", file_type="certificate")
DATASHEET = ProductFileRef(file_id="f2", file_name="data.pdf", file_type="datasheet")


def _product(pid="p1", specs=None, regs=(R1,), certs=("Q-Mark",), files=(DATASHEET,)) -> CompiledProduct:
    return CompiledProduct(
        product_id=pid,
        product_name=f"Product {pid}",
        product_code=pid.upper(),
        pillar="fire_doors",
        manufacturer_name="Acme",
        specifications={"rating": "FD30"} if specs is None else specs,
        certifications=list(certs),
        regulations=list(regs),
        files=list(files),
    )


def _quote() -> CompiledQuote:
    return CompiledQuote(quote_id="q1", quote_number="Q-1", client_name="Client", project_name=None,
                         status="sent", total=100.0, created_at="2026-01-01T00:00:00.000Z")


def _data(quotes=None, products=None, building_reference="HRB-1", audit_trail=None) -> GoldenThreadData:
    quotes = [_quote()] if quotes is None else quotes
    products = [_product()] if products is None else products
    regulations = summarize_regulations(products)
    return GoldenThreadData(
        package_reference="GT-20260101-TEST",
        project=ProjectIdentity(id="proj", name="Project", organization_id=ORG_ID,
                                building_reference=building_reference),
        quotes=quotes,
        products=products,
        regulations_summary=regulations,
        audit_trail=audit_trail or [],
        compiled_at="2026-01-01T00:00:00.000Z",
        metadata=PackageMetadata(
            total_products=len(products),
            total_quotes=len(quotes),
            total_regulations=len(regulations),
            total_files=sum(len(p.files) for p in products),
        ),
    )


def _codes(result) -> list[str]:
    return [w.code for w in result.warnings]


# ===========================================================================
# Class 1: Fully compliant data
# ===========================================================================

class TestFullyCompliant:

    def test_perfect_score(self):
        result = validate_golden_thread(_data())
        assert result.section_88_compliant
        assert result.section_91_compliant
        assert result.audit_trail_complete
        assert result.score == 100
        # First generation always notes the empty history
        assert _codes(result) == ["S91_NO_AUDIT_HISTORY"]

    def test_prior_history_clears_info(self):
        history = [AuditEntry(action="generated", performed_by="u", performed_at="2025-12-01T00:00:00.000Z")]
        assert validate_golden_thread(_data(audit_trail=history)).warnings == []


# ===========================================================================
# Class 2: Empty project
# ===========================================================================

class TestEmptyProject:

    def test_errors_and_flags(self):
        result = validate_golden_thread(_data(quotes=[], products=[], building_reference=None))
        assert not result.section_88_compliant
        assert result.section_91_compliant
        assert not result.audit_trail_complete
        assert result.error_codes == ["S88_NO_QUOTES", "S88_NO_PRODUCTS"]

    def test_no_product_dependent_checks_without_products(self):
        result = validate_golden_thread(_data(quotes=[], products=[]))
        codes = _codes(result)
        for code in ("S88_MISSING_SPECS", "S88_NO_REGULATION_LINKS", "S88_NO_CERTIFICATES", "S88_NO_FILES"):
            assert code not in codes

    def test_score(self):
        """9 checks (no specifications check); quotes, products and traceability fail, so does the building ref."""
        result = validate_golden_thread(_data(quotes=[], products=[], building_reference=None))
        assert result.score == 56   # 5 / 9 = 55.6

    def test_score_with_building_reference(self):
        result = validate_golden_thread(_data(quotes=[], products=[]))
        assert result.score == 67   # 6 / 9 = 66.7


# ===========================================================================
# Class 3: Section 88 checks
# ===========================================================================

class TestSection88:

    def test_no_quotes_is_error(self):
        result = validate_golden_thread(_data(quotes=[]))
        assert "S88_NO_QUOTES" in result.error_codes
        assert not result.section_88_compliant
        assert "S91_INCOMPLETE_CHAIN" in _codes(result)

    def test_missing_specs_is_warning(self):
        result = validate_golden_thread(_data(products=[_product(), _product("p2", specs={})]))
        warning = next(w for w in result.warnings if w.code == "S88_MISSING_SPECS")
        assert warning.severity == "warning"
        assert warning.section == "s88"
        assert warning.message.startswith("1 product(s) have no specifications.")
        assert result.section_88_compliant
        assert result.score == 90   # 9 / 10

    def test_no_regulation_links_is_error(self):
        result = validate_golden_thread(_data(products=[_product(regs=())]))
        assert "S88_NO_REGULATION_LINKS" in result.error_codes
        assert not result.section_88_compliant
        # No regulations means the traceability chain is broken too
        assert "S91_INCOMPLETE_CHAIN" in _codes(result)

    def test_partial_regulation_links_is_warning_and_passes(self):
        result = validate_golden_thread(_data(products=[_product(), _product("p2", regs=())]))
        warning = next(w for w in result.warnings if w.code == "S88_PARTIAL_REGULATION_LINKS")
        assert warning.severity == "warning"
        assert warning.message.startswith("1 product(s) have no linked regulations.")
        assert result.section_88_compliant
        assert result.score == 100

    def test_certificate_file_counts_as_evidence(self):
        result = validate_golden_thread(_data(products=[_product(certs=(), files=(CERT,))]))
        assert "S88_NO_CERTIFICATES" not in _codes(result)

    def test_no_certificates_is_warning(self):
        result = validate_golden_thread(_data(products=[_product(certs=())]))
        assert "S88_NO_CERTIFICATES" in _codes(result)
        assert result.section_88_compliant
        assert result.score == 90

    def test_no_files_is_warning(self):
        result = validate_golden_thread(_data(products=[_product(files=())]))
        assert "S88_NO_FILES" in _codes(result)
        assert result.section_88_compliant


# ===========================================================================
# Class 4: Section 91 checks
# ===========================================================================

class TestSection91:

    def test_missing_building_reference_is_info(self):
        result = validate_golden_thread(_data(building_reference=None))
        warning = next(w for w in result.warnings if w.code == "S91_NO_BUILDING_REF")
        assert (warning.severity, warning.section) == ("info", "s91")
        assert result.section_91_compliant
        assert result.score == 90

    def test_incomplete_chain_is_warning(self):
        result = validate_golden_thread(_data(products=[_product(regs=())]))
        warning = next(w for w in result.warnings if w.code == "S91_INCOMPLETE_CHAIN")
        assert warning.severity == "warning"
        assert result.section_91_compliant
        assert not result.audit_trail_complete

    def test_section_91_never_fails_on_warnings_alone(self):
        result = validate_golden_thread(_data(quotes=[], products=[], building_reference=None))
        assert result.section_91_compliant


# ===========================================================================
# Class 5: Invariants
# ===========================================================================

class TestInvariants:

    def test_warning_fields_constrained(self):
        ValidationWarning(severity="info", code="X", message="m", section="general")
        with pytest.raises(ValueError, match="Unknown severity"):
            ValidationWarning(severity="fatal", code="X", message="m", section="s88")
        with pytest.raises(ValueError, match="Unknown section"):
            ValidationWarning(severity="error", code="X", message="m", section="s99")

    def test_deterministic(self):
        data = _data(products=[_product(), _product("p2", specs={}, regs=())])
        assert validate_golden_thread(data) == validate_golden_thread(data)

    def test_adding_unspecified_product_never_raises_score(self):
        before = validate_golden_thread(_data(products=[_product()]))
        after = validate_golden_thread(_data(products=[_product(), _product("p2", specs={})]))
        assert after.score <= before.score
        added = set(_codes(after)) - set(_codes(before))
        assert added == {"S88_MISSING_SPECS"}

    @pytest.mark.parametrize("kwargs", [
        {},
        {"quotes": []},
        {"products": []},
        {"quotes": [], "products": [], "building_reference": None},
        {"products": [_product(specs={}, regs=(), certs=(), files=())]},
    ])
    def test_score_bounds(self, kwargs):
        score = validate_golden_thread(_data(**kwargs)).score
        assert isinstance(score, int)
        assert 0 <= score <= 100


# ===========================================================================
# Class 6: Compile -> validate end to end
# ===========================================================================

class TestEndToEnd:

    async def test_seeded_project(self, db_session, gt_project):
        data = await compile_golden_thread_data(db_session, gt_project["project_id"], ORG_ID, "GT-X", "HRB-7")
        result = validate_golden_thread(data)
        assert result.section_88_compliant
        assert result.error_codes == []
        assert "S88_MISSING_SPECS" in _codes(result)
        assert result.score == 90

    async def test_one_quote_two_products_partial_links(self, db_session):
        """P1 fully specified with R1 and a certificate; P2 bare. One regulation, one product."""
        from bluebook.models import orm_models

        reg = orm_models.Regulation(reference="R1", name="Regulation One", category="standard")
        project = orm_models.Project(organization_id=ORG_ID, name="Two products")
        db_session.add_all([reg, project])
        await db_session.flush()
        p1 = orm_models.Product(product_name="P1", specifications={"rating": "EI60"}, certifications=[])
        p2 = orm_models.Product(product_name="P2", specifications={}, certifications=[])
        db_session.add_all([p1, p2])
        await db_session.flush()
        quote = orm_models.Quote(project_id=project.id, organization_id=ORG_ID, quote_number="Q-1")
        db_session.add(quote)
        await db_session.flush()
        db_session.add_all([
            orm_models.ProductRegulation(product_id=p1.id, regulation_id=reg.id),
            orm_models.ProductFile(product_id=p1.id, file_name="cert.pdf", file_type="certificate"),
            orm_models.QuoteLineItem(quote_id=quote.id, product_id=p1.id, sort_order=0),
            orm_models.QuoteLineItem(quote_id=quote.id, product_id=p2.id, sort_order=1),
        ])
        await db_session.flush()

        data = await compile_golden_thread_data(db_session, project.id, ORG_ID, "GT-X")
        result = validate_golden_thread(data)

        assert [(r.reference, r.products_count) for r in data.regulations_summary] == [("R1", 1)]
        assert {"S88_MISSING_SPECS", "S88_PARTIAL_REGULATION_LINKS"} <= set(_codes(result))
        assert result.error_codes == []
        assert result.score < 100

    async def test_other_org_seed_isolated(self, db_session):
        ids = await seed_golden_thread_project(db_session, "org-second")
        data = await compile_golden_thread_data(db_session, ids["project_id"], "org-second", "GT-X")
        assert validate_golden_thread(data).section_88_compliant
