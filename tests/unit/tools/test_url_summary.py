"""Tests for the url.summary tool (no network access)."""

from __future__ import annotations

import socket
from unittest.mock import patch

import pytest

from ragcore.tools.registry import ToolRegistry
from ragcore.tools.url_summary import (
    SsrfError,
    check_ssrf,
    make_url_summary_tool,
    summarize,
    summarize_url,
    validate_url,
)


def _addrinfo(ip: str):
    return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", (ip, 0))]


@pytest.fixture
def public_dns():
    with patch("ragcore.tools.url_summary.socket.getaddrinfo", return_value=_addrinfo("93.184.216.34")):
        yield


# ------------------------------------------------------------------
# URL validation
# ------------------------------------------------------------------


@pytest.mark.parametrize("url", ["ftp://example.com/x", "file:///etc/passwd", "javascript:alert(1)"])
def test_validate_url_rejects_schemes(url):
    with pytest.raises(ValueError, match="Unsupported URL scheme"):
        validate_url(url)


def test_validate_url_requires_host():
    with pytest.raises(ValueError, match="no hostname"):
        validate_url("https:///path")


@pytest.mark.parametrize("ip", ["127.0.0.1", "10.0.0.5", "192.168.1.1", "169.254.169.254", "0.0.0.0"])
def test_check_ssrf_blocks_internal_addresses(ip):
    with patch("ragcore.tools.url_summary.socket.getaddrinfo", return_value=_addrinfo(ip)):
        with pytest.raises(SsrfError):
            check_ssrf("http://internal.example/")


def test_check_ssrf_allows_public_address(public_dns):
    check_ssrf("https://example.com/")


def test_check_ssrf_dns_failure():
    with patch(
        "ragcore.tools.url_summary.socket.getaddrinfo",
        side_effect=socket.gaierror("Name or service not known"),
    ):
        with pytest.raises(ValueError, match="DNS resolution failed"):
            check_ssrf("https://nowhere.invalid/")


# ------------------------------------------------------------------
# summarize
# ------------------------------------------------------------------


def test_summarize_short_text_unchanged():
    assert summarize("Short text.") == "Short text."


def test_summarize_keeps_leading_sentences_within_limit():
    text = "One two three. " * 50
    summary = summarize(text, limit=500)
    assert len(summary) <= 500
    assert summary.startswith("One two three. One two three.")
    assert summary.endswith(".")


def test_summarize_without_sentence_breaks_cuts_text():
    text = "x" * 800
    assert summarize(text, limit=500) == "x" * 500


# ------------------------------------------------------------------
# summarize_url / tool
# ------------------------------------------------------------------


def test_summarize_url_html(public_dns):
    html = b"<html><body><nav>Menu</nav><p>Hello from the page.</p></body></html>"
    with patch("ragcore.tools.url_summary.fetch", return_value=(html, "text/html")) as mock_fetch:
        result = summarize_url("https://example.com/", timeout=5)

    mock_fetch.assert_called_once_with("https://example.com/", 5)
    assert result.startswith("Summary of https://example.com/:\n\n")
    assert "Hello from the page." in result
    assert "Menu" not in result


def test_summarize_url_empty_content(public_dns):
    with patch("ragcore.tools.url_summary.fetch", return_value=(b"   ", "text/plain")):
        assert summarize_url("https://example.com/") == "Error: Could not extract text from content"


def test_summarize_url_blocks_private_host():
    with patch("ragcore.tools.url_summary.socket.getaddrinfo", return_value=_addrinfo("127.0.0.1")):
        with patch("ragcore.tools.url_summary.fetch") as mock_fetch:
            with pytest.raises(SsrfError):
                summarize_url("http://localhost:8080/admin")
    mock_fetch.assert_not_called()


@pytest.mark.asyncio
async def test_tool_errors_are_reported_as_text():
    registry = ToolRegistry()
    registry.register(make_url_summary_tool())
    assert await registry.invoke("url.summary", "{}") == (
        "Error invoking tool: Missing required argument 'url'"
    )
    assert (await registry.invoke("url.summary", '{"url": "ftp://x"}')).startswith(
        "Error invoking tool: Unsupported URL scheme"
    )
