"""Utilities for identifiers, timestamps and file persistence."""

import os
import re
import tempfile
import unicodedata
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(UTC)


def skill_id_from_name(name: str) -> str:
    """Derive the stable skill id from its display name.

    Lowercases, strips accents, collapses every run of non-alphanumerics into a
    single ``-`` and trims dashes from both ends ("Acessar Formulário" becomes
    "acessar-formulario").
    """
    normalized = unicodedata.normalize("NFD", name.lower())
    without_accents = "".join(c for c in normalized if not unicodedata.combining(c))
    slug = re.sub(r"[^a-z0-9]+", "-", without_accents)
    return slug.strip("-")


def timestamp_slug(moment: datetime) -> str:
    """Filesystem-safe timestamp with microseconds (e.g. 20250101_120000_000001)."""
    return moment.strftime("%Y%m%d_%H%M%S_%f")


def new_session_id(moment: datetime) -> str:
    """Time-derived session id with a short random suffix to avoid same-tick collisions."""
    return f"session-{timestamp_slug(moment)}-{str(uuid4())[:8]}"


def describe_error(error: BaseException) -> str:
    """Error message, falling back to the class name for message-less errors like TimeoutError."""
    return str(error) or error.__class__.__name__


def atomic_write_text(path: Path, content: str) -> None:
    """Atomically write text to `path` using temp + fsync + os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.tmp.", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise
