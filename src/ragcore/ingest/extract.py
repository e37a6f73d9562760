"""Text extraction — document bytes → plain text.

Dispatch by content type (guessed from the filename when missing):
  application/pdf                 → pypdf, page by page
  application/epub+zip            → zipfile + bs4 + html2text, spine order
  text/html, application/xhtml    → bs4 + html2text
  text/*, json, xml, yaml         → strict UTF-8 decode (BOM tolerated)

Anything else, undecodable text and corrupt containers raise ExtractionError.
"""

from __future__ import annotations

import io
import logging
import mimetypes
import warnings
import zipfile
from pathlib import PurePosixPath

import html2text
import pypdf
from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning
from pypdf.errors import PyPdfError

from ragcore.errors import ExtractionError

# html.parser is used for OPF/container XML on purpose; lxml is not a dependency.
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

logger = logging.getLogger(__name__)

PDF = "application/pdf"
EPUB = "application/epub+zip"
_HTML_TYPES = {"text/html", "application/xhtml+xml"}
_TEXT_TYPES = {
    "application/json",
    "application/xml",
    "application/x-yaml",
    "application/yaml",
    "application/csv",
}
_EXTENSION_TYPES = {
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".rst": "text/x-rst",
    ".log": "text/plain",
    ".yaml": "application/x-yaml",
    ".yml": "application/x-yaml",
    ".epub": EPUB,
}

_h2t = html2text.HTML2Text()
_h2t.ignore_links = True
_h2t.ignore_images = True
_h2t.body_width = 0  # no line wrapping


def guess_content_type(filename: str) -> str:
    """Return a MIME type for *filename*, falling back to octet-stream."""
    suffix = PurePosixPath(filename).suffix.lower()
    if suffix in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def is_supported(content_type: str) -> bool:
    ct = _normalise(content_type)
    return ct in (PDF, EPUB) or ct in _HTML_TYPES or ct in _TEXT_TYPES or ct.startswith("text/")


def extract_text(data: bytes, content_type: str | None = None, filename: str = "") -> str:
    """Extract plain text from *data*.

    Args:
        data: Raw document bytes.
        content_type: MIME type; parameters such as ``; charset=`` are ignored.
        filename: Used to guess the type when *content_type* is missing, and
            in error messages.

    Raises:
        ExtractionError: Unsupported type, undecodable text or corrupt file.
    """
    ct = _normalise(content_type or guess_content_type(filename))
    label = filename or "<bytes>"

    if ct == PDF:
        return _pdf_to_text(data, label)
    if ct == EPUB:
        return _epub_to_text(data, label)
    if ct in _HTML_TYPES:
        return html_to_text(_decode(data, label))
    if ct.startswith("text/") or ct in _TEXT_TYPES:
        return _decode(data, label)

    raise ExtractionError(f"Unsupported content type '{ct}' for '{label}'.")


def html_to_text(html: str) -> str:
    """Strip non-content tags, then convert the remaining HTML via html2text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["script", "style", "nav", "footer", "head"]):
        tag.decompose()
    return _h2t.handle(str(soup)).strip()


# ------------------------------------------------------------------
# Format handlers
# ------------------------------------------------------------------


def _normalise(content_type: str) -> str:
    return content_type.split(";")[0].strip().lower()


def _decode(data: bytes, label: str) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ExtractionError(f"'{label}' is not valid UTF-8 text: {exc}") from exc


def _pdf_to_text(data: bytes, label: str) -> str:
    try:
        reader = pypdf.PdfReader(io.BytesIO(data))
        parts: list[str] = []
        for page in reader.pages:
            stripped = (page.extract_text() or "").strip()
            if stripped:
                parts.append(stripped)
    except (PyPdfError, ValueError, KeyError) as exc:
        raise ExtractionError(f"Could not read PDF '{label}': {exc}") from exc
    return "\n\n".join(parts)


def _epub_to_text(data: bytes, label: str) -> str:
    try:
        with zipfile.ZipFile(io.BytesIO(data), "r") as zf:
            names = set(zf.namelist())
            opf_path = _find_opf_path(zf, names)
            hrefs = _parse_opf_spine(zf, opf_path)
            opf_dir = str(PurePosixPath(opf_path).parent)

            chapters: list[str] = []
            for href in hrefs:
                full_path = f"{opf_dir}/{href}".lstrip("/") if opf_dir != "." else href
                if full_path not in names:
                    full_path = href
                if full_path not in names:
                    logger.debug("EPUB '%s': spine item '%s' missing", label, href)
                    continue
                html = zf.read(full_path).decode("utf-8", errors="replace")
                text = html_to_text(html)
                if text:
                    chapters.append(text)
    except (zipfile.BadZipFile, KeyError) as exc:
        raise ExtractionError(f"Could not read EPUB '{label}': {exc}") from exc
    return "\n\n".join(chapters)


def _find_opf_path(zf: zipfile.ZipFile, names: set[str]) -> str:
    """Find the OPF package file path from META-INF/container.xml."""
    if "META-INF/container.xml" in names:
        xml = zf.read("META-INF/container.xml").decode("utf-8", errors="replace")
        rootfile = BeautifulSoup(xml, "html.parser").find("rootfile")
        if rootfile and rootfile.get("full-path"):
            return rootfile["full-path"]
    for name in sorted(names):
        if name.endswith(".opf"):
            return name
    raise ExtractionError("No OPF package file found in EPUB archive.")


def _parse_opf_spine(zf: zipfile.ZipFile, opf_path: str) -> list[str]:
    """Return chapter hrefs in spine order (all HTML items if no spine)."""
    soup = BeautifulSoup(zf.read(opf_path).decode("utf-8", errors="replace"), "html.parser")

    manifest: dict[str, str] = {}
    for item in soup.find_all("item"):
        href = item.get("href", "")
        if "html" in item.get("media-type", "") or href.endswith((".html", ".xhtml", ".htm")):
            manifest[item.get("id", "")] = href

    hrefs = [manifest[ref["idref"]] for ref in soup.find_all("itemref") if ref.get("idref") in manifest]
    return hrefs or list(manifest.values())
