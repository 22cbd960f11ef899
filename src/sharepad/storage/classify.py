"""Content classification by file extension."""

from __future__ import annotations

from enum import Enum
from pathlib import PurePath


class ContentKind(str, Enum):
    """Preview category for a stored file."""

    IMAGE = "image"
    TEXT = "text"
    PDF = "pdf"
    OTHER = "other"


IMAGE_EXTENSIONS = frozenset(
    {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".svg", ".ico", ".tif", ".tiff", ".avif"}
)

TEXT_EXTENSIONS = frozenset(
    {
        ".txt", ".md", ".markdown", ".rst", ".log", ".csv", ".tsv",
        ".json", ".yaml", ".yml", ".toml", ".ini", ".cfg", ".conf", ".env",
        ".xml", ".html", ".htm", ".css", ".scss",
        ".js", ".mjs", ".ts", ".tsx", ".jsx",
        ".py", ".rb", ".go", ".rs", ".java", ".kt", ".c", ".h", ".cpp", ".hpp", ".cs",
        ".php", ".sh", ".bash", ".zsh", ".ps1", ".bat", ".sql", ".lua", ".swift",
    }
)  # fmt: skip

PDF_EXTENSIONS = frozenset({".pdf"})


def classify(filename: str) -> ContentKind:
    """Classify a file by its (case-insensitive) extension."""
    suffix = PurePath(filename).suffix.lower()
    if suffix in IMAGE_EXTENSIONS:
        return ContentKind.IMAGE
    if suffix in TEXT_EXTENSIONS:
        return ContentKind.TEXT
    if suffix in PDF_EXTENSIONS:
        return ContentKind.PDF
    return ContentKind.OTHER


def content_flags(filename: str) -> dict[str, bool]:
    """Return the is_image_file / is_text_file / is_pdf_file flags for a filename."""
    kind = classify(filename)
    return {
        "is_image_file": kind is ContentKind.IMAGE,
        "is_text_file": kind is ContentKind.TEXT,
        "is_pdf_file": kind is ContentKind.PDF,
    }
