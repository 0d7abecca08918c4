"""
Golden Thread PDF — branded A4 handover pack.

Cover → table of contents → five sections, each section starting on a new
page. Pagination is automatic: every line reserves its height first and a new
page (with the running footer) is started when the bottom margin would be
crossed, so a single key/value line is never split.
"""
import io
import logging
from datetime import datetime
from typing import Optional

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from bluebook.config import DARK, GRAY, HF_BLUE, LIGHT_GRAY, PRODUCT_NAME, WHITE
from bluebook.models.golden_thread_schema import GoldenThreadData, ValidationResult
from bluebook.services.perf_monitor import timed

logger = logging.getLogger("bluebook-golden-thread")

PAGE_W, PAGE_H = A4
MARGIN = 50
CONTENT_W = PAGE_W - 2 * MARGIN
BOTTOM_LIMIT = MARGIN + 30
MAX_SPEC_ROWS = 8

FOOTER_TEXT = f"{PRODUCT_NAME} — Golden Thread Package"
SECTION_BAND = (0.96, 0.97, 0.98)
PRODUCT_BAND = (0.97, 0.97, 0.97)
PASS_GREEN = (0.13, 0.55, 0.13)
FAIL_RED = (0.8, 0.2, 0.2)

SECTIONS = (
    "1. Compliance Summary",
    "2. Product Specifications",
    "3. Regulatory Compliance",
    "4. Quotation Records",
    "5. Audit Trail",
)

_SEVERITY_PREFIX = {"error": "[ERROR]", "warning": "[WARNING]", "info": "[INFO]"}


def _parse_iso(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'' if n == 1 else 's'}"


class _PdfContext:
    """Canvas plus the running cursor and page counter."""

    def __init__(self, c: canvas.Canvas):
        self.c = c
        self.y = PAGE_H - MARGIN
        self.page_num = 1

    def new_page(self):
        self.c.showPage()
        self.page_num += 1
        self.y = PAGE_H - MARGIN
        self.c.setFillColorRGB(*GRAY)
        self.c.setFont("Helvetica", 8)
        self.c.drawString(PAGE_W - MARGIN - 40, 25, f"Page {self.page_num}")
        self.c.drawString(MARGIN, 25, FOOTER_TEXT)

    def ensure_space(self, needed: float):
        if self.y - needed < BOTTOM_LIMIT:
            self.new_page()

    def section_title(self, title: str):
        self.ensure_space(30)
        self.y -= 20
        c = self.c
        c.setFillColorRGB(*SECTION_BAND)
        c.rect(MARGIN, self.y - 4, CONTENT_W, 24, stroke=0, fill=1)
        c.setFillColorRGB(*HF_BLUE)
        c.setFont("Helvetica-Bold", 12)
        c.drawString(MARGIN + 8, self.y, title)
        self.y -= 28

    def key_value(self, key: str, value: str):
        self.ensure_space(16)
        c = self.c
        c.setFillColorRGB(*GRAY)
        c.setFont("Helvetica-Bold", 9)
        c.drawString(MARGIN + 8, self.y, key)
        c.setFillColorRGB(*DARK)
        c.setFont("Helvetica", 9)
        c.drawString(MARGIN + 150, self.y, value)
        self.y -= 16

    def wrapped_text(self, text: str, max_width: float = CONTENT_W - 16, size: float = 9):
        c = self.c
        line = ""
        for word in text.split(" "):
            test = f"{line} {word}" if line else word
            if line and c.stringWidth(test, "Helvetica", size) > max_width:
                self._text_line(line, size)
                line = word
            else:
                line = test
        if line:
            self._text_line(line, size)

    def _text_line(self, line: str, size: float):
        self.ensure_space(14)
        self.c.setFillColorRGB(*DARK)
        self.c.setFont("Helvetica", size)
        self.c.drawString(MARGIN + 8, self.y, line)
        self.y -= 14


# ── Pages ─────────────────────────────────────────────────────────────────────

def _draw_cover(ctx: _PdfContext, data: GoldenThreadData, validation: ValidationResult):
    c = ctx.c
    c.setFillColorRGB(*HF_BLUE)
    c.rect(0, PAGE_H - 200, PAGE_W, 200, stroke=0, fill=1)
    c.setFillColorRGB(*WHITE)
    c.setFont("Helvetica-Bold", 36)
    c.drawString(MARGIN, PAGE_H - 100, "GOLDEN THREAD")
    c.setFont("Helvetica", 24)
    c.drawString(MARGIN, PAGE_H - 140, "HANDOVER PACKAGE")
    c.setFillColorRGB(0.8, 0.9, 1)
    c.setFont("Helvetica", 12)
    c.drawString(MARGIN, PAGE_H - 170, "BSA 2022 Compliant")

    ctx.y = PAGE_H - 260
    c.setFillColorRGB(*DARK)
    c.setFont("Helvetica-Bold", 20)
    c.drawString(MARGIN, ctx.y, data.project.name)
    ctx.y -= 30

    ctx.key_value("Package Reference:", data.package_reference)
    if data.project.building_reference:
        ctx.key_value("Building Reference:", data.project.building_reference)
    compiled = _parse_iso(data.compiled_at)
    ctx.key_value("Generated:", compiled.strftime("%d %B %Y") if compiled else data.compiled_at)
    ctx.key_value("Products:", str(data.metadata.total_products))
    ctx.key_value("Regulations:", str(data.metadata.total_regulations))
    ctx.key_value("Quotes:", str(data.metadata.total_quotes))

    ctx.y -= 20
    for label, ok in (("Section 88", validation.section_88_compliant),
                      ("Section 91", validation.section_91_compliant)):
        c.setFillColorRGB(*(PASS_GREEN if ok else FAIL_RED))
        c.setFont("Helvetica-Bold", 11)
        c.drawString(MARGIN + 8, ctx.y, f"{label}: {'COMPLIANT' if ok else 'INCOMPLETE'}")
        ctx.y -= 18
    c.setFillColorRGB(*DARK)
    c.drawString(MARGIN + 8, ctx.y, f"Compliance Score: {validation.score}%")

    c.setFillColorRGB(*HF_BLUE)
    c.setFont("Helvetica", 10)
    c.drawString(MARGIN, 40, "Harmony Fire — Fire Protection Specialists")
    c.setFillColorRGB(*GRAY)
    c.setFont("Helvetica", 8)
    c.drawString(MARGIN, 25, f"Generated by {PRODUCT_NAME}")


def _draw_contents(ctx: _PdfContext):
    ctx.new_page()
    c = ctx.c
    c.setFillColorRGB(*HF_BLUE)
    c.setFont("Helvetica-Bold", 18)
    c.drawString(MARGIN, ctx.y, "Table of Contents")
    ctx.y -= 30
    c.setFillColorRGB(*DARK)
    c.setFont("Helvetica", 11)
    for item in SECTIONS:
        c.drawString(MARGIN + 8, ctx.y, item)
        ctx.y -= 20


def _draw_compliance_summary(ctx: _PdfContext, validation: ValidationResult):
    ctx.new_page()
    ctx.section_title(SECTIONS[0])
    if not validation.warnings:
        ctx.wrapped_text(
            "All compliance checks passed. This package meets BSA 2022 Section 88 "
            "and Section 91 requirements."
        )
        return
    for w in validation.warnings:
        ctx.wrapped_text(f"{_SEVERITY_PREFIX.get(w.severity, '[INFO]')} {w.message}")
        ctx.y -= 4


def _draw_products(ctx: _PdfContext, data: GoldenThreadData):
    ctx.new_page()
    ctx.section_title(SECTIONS[1])
    if not data.products:
        ctx.wrapped_text("No products included in this package.")
        return

    c = ctx.c
    for product in data.products:
        ctx.ensure_space(60)
        ctx.y -= 8
        c.setFillColorRGB(*PRODUCT_BAND)
        c.setStrokeColorRGB(*LIGHT_GRAY)
        c.setLineWidth(0.5)
        c.rect(MARGIN, ctx.y - 4, CONTENT_W, 20, stroke=1, fill=1)
        c.setFillColorRGB(*DARK)
        c.setFont("Helvetica-Bold", 10)
        c.drawString(MARGIN + 8, ctx.y, product.product_name)
        ctx.y -= 24

        ctx.key_value("Code:", product.product_code or "—")
        ctx.key_value("Pillar:", product.pillar.replace("_", " "))
        ctx.key_value("Manufacturer:", product.manufacturer_name or "—")
        if product.certifications:
            ctx.key_value("Certifications:", ", ".join(product.certifications))

        specs = list(product.specifications.items())
        for key, value in specs[:MAX_SPEC_ROWS]:
            ctx.key_value(f"  {key}:", str(value))
        if len(specs) > MAX_SPEC_ROWS:
            ctx.wrapped_text(f"  ... and {len(specs) - MAX_SPEC_ROWS} more specifications")

        if product.regulations:
            ctx.key_value("Regulations:", ", ".join(r.reference for r in product.regulations))
        ctx.y -= 8


def _draw_regulations(ctx: _PdfContext, data: GoldenThreadData):
    ctx.new_page()
    ctx.section_title(SECTIONS[2])
    if not data.regulations_summary:
        ctx.wrapped_text("No regulations linked to products in this package.")
        return
    for reg in data.regulations_summary:
        ctx.ensure_space(30)
        ctx.key_value(reg.reference, f"{reg.name} ({_plural(reg.products_count, 'product')})")


def _draw_quotes(ctx: _PdfContext, data: GoldenThreadData):
    ctx.new_page()
    ctx.section_title(SECTIONS[3])
    if not data.quotes:
        ctx.wrapped_text("No quotations found for this project.")
        return
    for quote in data.quotes:
        ctx.ensure_space(40)
        ctx.y -= 4
        ctx.key_value("Quote:", f"{quote.quote_number} — {quote.client_name}")
        ctx.key_value("Status:", quote.status)
        ctx.key_value("Total:", f"£{quote.total or 0:.2f}")
        ctx.key_value("Items:", _plural(len(quote.line_items), "line item"))
        ctx.y -= 8


def _draw_audit_trail(ctx: _PdfContext, data: GoldenThreadData):
    ctx.new_page()
    ctx.section_title(SECTIONS[4])
    if not data.audit_trail:
        ctx.wrapped_text("First generation — no prior audit trail entries.")
        return
    for entry in data.audit_trail:
        ctx.ensure_space(20)
        when = _parse_iso(entry.performed_at)
        stamp = when.strftime("%d %b %Y, %H:%M") if when else entry.performed_at
        ctx.wrapped_text(f"{stamp} — {entry.action}")


@timed
def generate_golden_thread_pdf(data: GoldenThreadData, validation: ValidationResult) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4, invariant=1)
    c.setTitle(f"Golden Thread Package {data.package_reference}")
    c.setAuthor(PRODUCT_NAME)
    c.setSubject(data.project.name)

    ctx = _PdfContext(c)
    _draw_cover(ctx, data, validation)
    _draw_contents(ctx)
    _draw_compliance_summary(ctx, validation)
    _draw_products(ctx, data)
    _draw_regulations(ctx, data)
    _draw_quotes(ctx, data)
    _draw_audit_trail(ctx, data)

    c.showPage()
    c.save()
    pdf_bytes = buf.getvalue()
    logger.info(f"Golden Thread PDF {data.package_reference}: {ctx.page_num} pages, {len(pdf_bytes):,} bytes")
    return pdf_bytes
