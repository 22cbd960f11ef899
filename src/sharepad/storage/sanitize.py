"""Filename and environment name sanitization."""

from __future__ import annotations

import hashlib
import os
import unicodedata

from werkzeug.utils import secure_filename

PLACEHOLDER_NAME = "unnamed"
DEFAULT_ENVIRONMENT = "default"


def _drops_characters(text: str) -> bool:
    """Check whether ASCII folding loses characters other than accents."""
    decomposed = unicodedata.normalize("NFKD", text)
    return any(ord(c) > 127 and not unicodedata.combining(c) for c in decomposed)


def sanitize_name(name: str | None) -> str:
    """
    Map an arbitrary client-supplied name to a safe single path segment.

    The stem and the extension are sanitized separately so the extension
    survives even when the stem does not. Path separators and traversal
    sequences are removed, accents are folded to ASCII and remaining unsafe
    characters are replaced. Characters with no ASCII form (e.g. CJK) are
    dropped and replaced by a short digest of the original stem, so
    distinct names never collapse into one. A stem that sanitizes to nothing
    becomes a placeholder.
    """
    if not name:
        return PLACEHOLDER_NAME

    stem, ext = os.path.splitext(name)
    safe_stem = secure_filename(stem)
    if _drops_characters(stem):
        digest = hashlib.sha256(stem.encode("utf-8")).hexdigest()[:8]
        safe_stem = f"{safe_stem or PLACEHOLDER_NAME}-{digest}"
    elif not safe_stem:
        safe_stem = PLACEHOLDER_NAME

    safe_ext = secure_filename(ext.lstrip("."))
    return f"{safe_stem}.{safe_ext}" if safe_ext else safe_stem


def sanitize_environment(name: str | None, default: str = DEFAULT_ENVIRONMENT) -> str:
    """Sanitize an environment name, falling back to the default environment."""
    if not name or not name.strip():
        return default
    return secure_filename(name) or default
