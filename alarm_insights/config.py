"""Runtime configuration for the alarm insights backend.
Defines the extraction model, ingestion limits and optional column alias overrides.
"""
from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Points to alarm_insights/
BASE_DIR = Path(__file__).resolve().parent

# Explicitly load .env from the package folder and allow override so a local key
# is not shadowed by a conflicting OS environment variable.
_env_path = BASE_DIR / ".env"
load_dotenv(dotenv_path=_env_path, override=True)

# Extraction model configuration
OPENAI_API_KEY: str = (os.getenv("OPENAI_API_KEY") or "").strip()
OPENAI_BASE_URL: Optional[str] = (os.getenv("OPENAI_BASE_URL") or "").strip() or None
CONTROL_LOOP_MODEL: str = os.getenv("CONTROL_LOOP_MODEL", "gpt-4o-mini")
CONTROL_LOOP_TEMPERATURE: float = float(os.getenv("CONTROL_LOOP_TEMPERATURE", "0"))
CONTROL_LOOP_MAX_OUTPUT_TOKENS: int = int(os.getenv("CONTROL_LOOP_MAX_OUTPUT_TOKENS", "1000"))

# Ingestion limits
INGEST_BATCH_SIZE: int = int(os.getenv("INGEST_BATCH_SIZE", "2000"))
INGEST_MAX_ROWS: int = int(os.getenv("INGEST_MAX_ROWS", "1000000"))

# Optional JSON file: {"timestamp": ["EventTime", ...], "tag": [...], ...}
COLUMN_ALIASES_FILE: Optional[str] = (os.getenv("ALARM_COLUMN_ALIASES_FILE") or "").strip() or None

CORS_ORIGINS: List[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]


def load_column_aliases(path: Optional[str] = None) -> Optional[Dict[str, List[str]]]:
    """Read alias overrides from a JSON file; None when unset or unreadable."""
    path = path or COLUMN_ALIASES_FILE
    if not path:
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring column alias file {path}: {e}")
        return None
    if not isinstance(raw, dict):
        logger.warning(f"Ignoring column alias file {path}: expected a JSON object")
        return None
    return {str(k): [str(v) for v in (vals or [])] for k, vals in raw.items()}


def sanitize_error_message(msg: object) -> str:
    """Remove any API key-like tokens from error strings before returning/logging.
    Replaces patterns like 'sk-...' and 'sk-proj-...' with masked tokens.
    """
    msg = str(msg)
    msg = re.sub(r"sk-[A-Za-z0-9\-_]{4,}", "sk-***", msg)
    msg = re.sub(r"(api_key|api-key|OPENAI_API_KEY)\s*[:=]\s*[^\s,'\"]+", r"\1=***", msg, flags=re.I)
    return msg


def settings_status() -> dict:
    return {
        "base_dir": str(BASE_DIR),
        "env_file_exists": _env_path.exists(),
        "openai_key_present": bool(OPENAI_API_KEY),
        "openai_base_url": OPENAI_BASE_URL,
        "control_loop_model": CONTROL_LOOP_MODEL,
        "ingest_batch_size": INGEST_BATCH_SIZE,
        "ingest_max_rows": INGEST_MAX_ROWS,
        "column_aliases_file": COLUMN_ALIASES_FILE,
    }
