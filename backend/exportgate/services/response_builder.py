"""Wire-level assembly of file download responses."""
import re
import unicodedata
from typing import Dict, Optional, Sequence
from urllib.parse import quote

from fastapi import Response


DEFAULT_FILENAME = "export"

_ILLEGAL_FILENAME_RE = re.compile(r'[\\/:*?"<>|\r\n\t]')
_REPEATED_SEPARATOR_RE = re.compile(r"-{2,}")
_EXTENSION_RE = re.compile(r"\.[A-Za-z0-9]{1,8}$")

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def sanitize_filename(name: Optional[str], default_extension: str = ".xlsx") -> str:
    """Make a user-supplied name safe to use as a download filename.

    Illegal characters become ``-``, runs of ``-`` collapse to one, and the
    default extension is appended when the name has none.

    Args:
        name: Desired filename
        default_extension: Extension forced onto names without one

    Returns:
        Sanitized filename, never empty
    """
    cleaned = _ILLEGAL_FILENAME_RE.sub("-", (name or "").strip())
    cleaned = _REPEATED_SEPARATOR_RE.sub("-", cleaned).strip(" .")
    if not cleaned or cleaned == "-":
        cleaned = DEFAULT_FILENAME

    if not _EXTENSION_RE.search(cleaned):
        extension = default_extension if default_extension.startswith(".") else f".{default_extension}"
        cleaned = f"{cleaned}{extension}"
    return cleaned


def ascii_fallback(filename: str) -> str:
    """Fold diacritics and replace any remaining non-ASCII character with ``_``."""
    decomposed = unicodedata.normalize("NFKD", filename)
    folded = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return "".join(ch if 32 <= ord(ch) < 127 and ch not in '"\\' else "_" for ch in folded)


def content_disposition(filename: str) -> str:
    """Build an attachment header carrying both filename encodings (RFC 6266 / RFC 5987)."""
    return f"attachment; filename=\"{ascii_fallback(filename)}\"; filename*=UTF-8''{quote(filename, safe='')}"


def cors_headers(origin: Optional[str], allowed_origins: Sequence[str]) -> Dict[str, str]:
    """Compute cross-origin headers against an allow-list.

    A listed origin is echoed back; any other origin gets the first entry of
    the list instead of a reflection of what it sent.

    Args:
        origin: Value of the request's Origin header
        allowed_origins: Explicit allow-list

    Returns:
        Headers to add to the response (empty if the allow-list is empty)
    """
    if not allowed_origins:
        return {}

    allowed = origin if origin and origin in allowed_origins else allowed_origins[0]
    return {
        "Access-Control-Allow-Origin": allowed,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Expose-Headers": "Content-Disposition",
        "Vary": "Origin",
    }


def build_attachment_response(
    content: bytes,
    filename: str,
    media_type: str,
    origin: Optional[str] = None,
    allowed_origins: Sequence[str] = (),
    default_extension: str = ".xlsx",
) -> Response:
    """Wrap a rendered file into a download response.

    Args:
        content: File bytes
        filename: Desired filename (sanitized here)
        media_type: Content type of the file
        origin: Request Origin header
        allowed_origins: CORS allow-list
        default_extension: Extension forced onto names without one

    Returns:
        Response with attachment, length, no-cache and CORS headers
    """
    safe_name = sanitize_filename(filename, default_extension)
    headers = {
        "Content-Disposition": content_disposition(safe_name),
        "Content-Length": str(len(content)),
        **NO_CACHE_HEADERS,
        **cors_headers(origin, allowed_origins),
    }
    return Response(content=content, media_type=media_type, headers=headers)
