"""
Declarative base and shared column helpers for all engine tables.
"""
import hashlib
import re
import unicodedata
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

Base = declarative_base()

_WHITESPACE = re.compile(r"\s+")


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Naive UTC timestamp (SQLite stores no timezone)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_text(text: str) -> str:
    """Normalize text for lookup: NFC, collapsed whitespace, casefolded."""
    text = unicodedata.normalize("NFC", text or "")
    text = _WHITESPACE.sub(" ", text).strip()
    return text.casefold()


def compute_hash(text: str, source_lang: str, target_lang: str) -> str:
    """Compute SHA-256 hash for exact source lookup within a language pair."""
    content = f"{source_lang.lower()}:{target_lang.lower()}:{normalize_text(text)}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def import_models() -> None:
    """Import every model module so metadata.create_all sees all tables."""
    from tmcore.tm import models as _tm_models  # noqa: F401
    from tmcore.terminology import models as _term_models  # noqa: F401
    from tmcore.linking import models as _linking_models  # noqa: F401
    from tmcore.alignment import models as _alignment_models  # noqa: F401
