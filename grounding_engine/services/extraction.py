"""Text extraction and cleaning for uploaded documents."""

import html
import io
import logging
import re
from typing import Optional

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from grounding_engine.core.exceptions import IngestionError

logger = logging.getLogger(__name__)

TEXT_MIME_TYPES = {"text/plain", "text/markdown", "text/csv"}
HTML_MIME_TYPES = {"text/html", "application/xhtml+xml"}
PDF_MIME_TYPES = {"application/pdf"}

_TAG_RE = re.compile(r"<[^>]*>")
_SCRIPT_RE = re.compile(r"<script[^>]*>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[^>]*>[\s\S]*?</style>", re.IGNORECASE)
_BLOCK_BREAKS = [
    (re.compile(r"<br\s*/?>", re.IGNORECASE), "\n"),
    (re.compile(r"</p>", re.IGNORECASE), "\n\n"),
    (re.compile(r"</div>", re.IGNORECASE), "\n"),
    (re.compile(r"</h[1-6]>", re.IGNORECASE), "\n\n"),
    (re.compile(r"<li[^>]*>", re.IGNORECASE), "• "),
    (re.compile(r"</li>", re.IGNORECASE), "\n"),
]


def html_to_text(markup: str) -> str:
    """
    Convert HTML to plain text, keeping paragraph structure.

    Args:
        markup: HTML content.

    Returns:
        Plain text.
    """
    text = _SCRIPT_RE.sub("", markup)
    text = _STYLE_RE.sub("", text)
    for pattern, replacement in _BLOCK_BREAKS:
        text = pattern.sub(replacement, text)
    text = _TAG_RE.sub("", text)
    text = html.unescape(text).replace("\xa0", " ")
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def clean_text(text: Optional[str]) -> str:
    """
    Normalize whitespace and punctuation spacing before chunking.

    Deterministic: identical input always yields identical output.

    Args:
        text: Raw text.

    Returns:
        Cleaned text, possibly empty.
    """
    if not text:
        return ""

    cleaned = text
    if _TAG_RE.search(cleaned):
        cleaned = html_to_text(cleaned)

    cleaned = cleaned.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = cleaned.replace("\t", " ")
    cleaned = re.sub(r" +", " ", cleaned)
    cleaned = re.sub(r" +([.!?,;:])", r"\1", cleaned)
    cleaned = re.sub(r" *\n *", "\n", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def _extract_pdf(file_bytes: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(file_bytes))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, ValueError, KeyError) as e:
        raise IngestionError(f"Failed to read PDF: {str(e)}") from e
    return "\n\n".join(pages)


def _decode(file_bytes: bytes) -> str:
    for encoding in ("utf-8-sig", "utf-16"):
        try:
            return file_bytes.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise IngestionError("File is not valid UTF-8 or UTF-16 text")


def extract_text(
    raw_text: Optional[str] = None,
    file_bytes: Optional[bytes] = None,
    mime_type: Optional[str] = None,
) -> str:
    """
    Extract and clean text from pasted text or uploaded file bytes.

    Args:
        raw_text: Pasted text, used when no file is given.
        file_bytes: Uploaded file content.
        mime_type: MIME type of the uploaded file.

    Returns:
        Cleaned text. May be empty; the caller decides how to report that.

    Raises:
        IngestionError: If the file type is unsupported or unreadable.
    """
    if file_bytes is None:
        return clean_text(raw_text)

    base_type = (mime_type or "").split(";")[0].strip().lower()
    if base_type in PDF_MIME_TYPES:
        text = _extract_pdf(file_bytes)
    elif base_type in HTML_MIME_TYPES:
        text = html_to_text(_decode(file_bytes))
    elif base_type in TEXT_MIME_TYPES:
        text = _decode(file_bytes)
    else:
        raise IngestionError(f"File type {mime_type or 'unknown'} is not supported")

    logger.info(f"Extracted {len(text)} characters from {base_type} upload")
    return clean_text(text)
