"""
Runtime configuration for hf.bluebook: single source of truth for environment
settings, branding strings and fixed document constants.

Import from here in services and routes rather than reading os.environ directly.
"""
from __future__ import annotations

import os

# ── Storage ───────────────────────────────────────────────────────────────────
# Floor-plan uploads and generated artifacts live on local disk.
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "/tmp/uploads")
DOWNLOAD_DIR = os.getenv("DOWNLOAD_DIR", "/tmp/downloads")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))

# ── AI vision ─────────────────────────────────────────────────────────────────
AUTOPLAN_VISION_MODEL = os.getenv(
    "AUTOPLAN_VISION_MODEL", "anthropic/claude-sonnet-4-5-20250929"
)
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "4096"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.1"))

# ── Auth ──────────────────────────────────────────────────────────────────────
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "changethis_use_a_real_secret_in_production_64chars")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# ── Background workers ────────────────────────────────────────────────────────
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

# ── Branding ──────────────────────────────────────────────────────────────────
BRAND_NAME = "HARMONY FIRE"
BRAND_TAGLINE = "Fire Protection Specialists"
PRODUCT_NAME = "hf.bluebook"

# Brand palette as reportlab RGB tuples (0-1)
HF_BLUE = (0.0, 0.337, 0.655)      # #0056a7
DARK = (0.165, 0.165, 0.165)       # #2A2A2A
GRAY = (0.4, 0.4, 0.4)
LIGHT_GRAY = (0.85, 0.85, 0.85)
WHITE = (1.0, 1.0, 1.0)
RED = (0.863, 0.149, 0.149)        # #DC2626
GREEN = (0.086, 0.639, 0.290)      # #16A34A
BLUE = (0.145, 0.388, 0.922)       # #2563EB

# ── References ────────────────────────────────────────────────────────────────
PLAN_REFERENCE_PREFIX = "HF-AP"
PACKAGE_REFERENCE_PREFIX = "GT"
GOLDEN_THREAD_SCHEMA_VERSION = "1.0"

# Export formats accepted for a Golden Thread package
EXPORT_FORMATS: tuple[str, ...] = ("json", "csv", "pdf", "all")
