"""url.summary tool — fetch a web page and return an extractive summary.

Security requirements:
- SSRF guard: the hostname is resolved and private/loopback/link-local/reserved
  ranges are blocked before any connection is established.
- Allowed URL schemes: https:// and http:// only.
- Content-Type whitelist: text/html and text/plain only.
- Max response body: 5 MB.
- Max redirects: 3.
"""

from __future__ import annotations

import ipaddress
import logging
import re
import socket
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from ragcore.ingest.extract import html_to_text
from ragcore.tools.registry import Tool

logger = logging.getLogger(__name__)

_USER_AGENT = "ragcore/0.1 (url.summary tool)"
_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
_MAX_REDIRECTS = 3
_ALLOWED_SCHEMES = {"https", "http"}
_ALLOWED_CONTENT_TYPES = {"text/html", "text/plain"}

MAX_CONTENT_CHARS = 5000
SUMMARY_CHARS = 500

_SENTENCE_END_RE = re.compile(r"[.!?]+")


class SsrfError(ValueError):
    """Raised when a URL resolves to a private or reserved address."""


def validate_url(url: str) -> None:
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        raise ValueError(
            f"Unsupported URL scheme '{parsed.scheme}'. Only https:// and http:// are allowed."
        )
    if not parsed.hostname:
        raise ValueError(f"URL has no hostname: {url}")


def check_ssrf(url: str) -> None:
    """Resolve the hostname and block private/reserved IP ranges.

    Raises SsrfError if any resolved address is private, loopback,
    link-local, or otherwise reserved.
    """
    hostname = urllib.parse.urlparse(url).hostname
    if not hostname:
        raise ValueError(f"URL has no hostname: {url}")

    try:
        addrinfos = socket.getaddrinfo(hostname, None)
    except socket.gaierror as exc:
        raise ValueError(f"DNS resolution failed for '{hostname}': {exc}") from exc

    for addrinfo in addrinfos:
        try:
            ip = ipaddress.ip_address(addrinfo[4][0])
        except ValueError:
            continue
        if (
            ip.is_private
            or ip.is_loopback
            or ip.is_link_local
            or ip.is_reserved
            or ip.is_multicast
            or ip.is_unspecified
        ):
            raise SsrfError(
                f"URL resolves to private address ({ip}). "
                "Access to internal network addresses is not allowed."
            )


def fetch(url: str, timeout: float) -> tuple[bytes, str]:
    """Fetch *url* with timeout, redirect limit, size cap, and Content-Type check.

    Returns (body_bytes, content_type_without_params).
    """
    request = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
    opener = urllib.request.build_opener(_LimitedRedirectHandler(_MAX_REDIRECTS))

    try:
        response = opener.open(request, timeout=timeout)
    except urllib.error.URLError as exc:
        raise RuntimeError(f"Failed to fetch URL '{url}': {exc}") from exc

    with response:
        ct = response.headers.get("Content-Type", "text/html").split(";")[0].strip().lower()
        if ct not in _ALLOWED_CONTENT_TYPES:
            raise ValueError(
                f"Unsupported Content-Type '{ct}' for URL '{url}'. "
                f"Accepted: {', '.join(sorted(_ALLOWED_CONTENT_TYPES))}"
            )
        body = response.read(_MAX_BYTES + 1)

    if len(body) > _MAX_BYTES:
        raise ValueError(
            f"Response body exceeds {_MAX_BYTES // (1024 * 1024)} MB limit for URL '{url}'."
        )
    return body, ct


def summarize(text: str, limit: int = SUMMARY_CHARS) -> str:
    """Leading sentences of *text* that fit in *limit* characters."""
    if len(text) <= limit:
        return text

    picked: list[str] = []
    used = 0
    for sentence in _SENTENCE_END_RE.split(text):
        sentence = sentence.strip()
        if not sentence:
            continue
        if used + len(sentence) + 1 > limit:
            break
        picked.append(sentence)
        used += len(sentence) + 2

    if not picked:
        return text[:limit]
    return ". ".join(picked) + "."


def summarize_url(url: str, timeout: float = 30.0) -> str:
    url = url.strip()
    validate_url(url)
    check_ssrf(url)
    body, content_type = fetch(url, timeout)

    text = body.decode("utf-8", errors="replace")
    if content_type == "text/html":
        text = html_to_text(text)
    text = text.strip()
    if not text:
        return "Error: Could not extract text from content"

    if len(text) > MAX_CONTENT_CHARS:
        text = text[:MAX_CONTENT_CHARS] + "..."
    logger.debug("Fetched %d chars from %s", len(text), url)
    return f"Summary of {url}:\n\n{summarize(text)}"


def make_url_summary_tool(timeout: float = 30.0) -> Tool:
    def _handler(args: dict[str, Any]) -> str:
        url = args.get("url")
        if not isinstance(url, str) or not url.strip():
            raise ValueError("Missing required argument 'url'")
        return summarize_url(url, timeout=timeout)

    return Tool(
        name="url.summary",
        description="Fetch and summarize content from a URL.",
        parameters={
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "The URL to fetch and summarize"},
            },
            "required": ["url"],
        },
        handler=_handler,
    )


class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Raise an error after more than *max_redirects* redirects.

    Each redirect target goes through the same SSRF check as the original URL.
    """

    def __init__(self, max_redirects: int) -> None:
        self._max_redirects = max_redirects
        self._count = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._count += 1
        if self._count > self._max_redirects:
            raise RuntimeError(
                f"Too many redirects (>{self._max_redirects}) for URL '{req.full_url}'."
            )
        validate_url(newurl)
        check_ssrf(newurl)
        return super().redirect_request(req, fp, code, msg, headers, newurl)
