"""
Tests for the metadata resolver.

HTTP is mocked at httpx.AsyncClient and DNS at socket.getaddrinfo, so these tests
never touch the network.
"""
import asyncio
import socket
from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from services.metadata_resolver import (
    DESCRIPTION_MAX_LENGTH,
    EMPTY_METADATA,
    REQUEST_HEADERS,
    TITLE_MAX_LENGTH,
    Metadata,
    SSRFBlockedError,
    extract_metadata,
    is_private_ip,
    resolve_metadata,
    validate_url_not_private,
)

PUBLIC_IP = "93.184.216.34"


def _addrinfo(ip: str) -> list[tuple[Any, ...]]:
    family = socket.AF_INET6 if ":" in ip else socket.AF_INET
    return [(family, socket.SOCK_STREAM, 6, "", (ip, 0))]


@pytest.fixture
def public_dns() -> Iterator[MagicMock]:
    """Every hostname resolves to a public address."""
    with patch(
        "services.metadata_resolver.socket.getaddrinfo",
        return_value=_addrinfo(PUBLIC_IP),
    ) as mock_getaddrinfo:
        yield mock_getaddrinfo


def _mock_response(
    text: str = "",
    url: str = "https://example.com/page",
    status_code: int = 200,
    content_type: str = "text/html; charset=utf-8",
) -> MagicMock:
    response = MagicMock()
    response.text = text
    response.url = url
    response.status_code = status_code
    response.is_success = 200 <= status_code < 300
    response.headers = {"content-type": content_type}
    return response


def _patch_client(response: MagicMock | None = None, side_effect: Any = None) -> Any:
    """Patch httpx.AsyncClient so `get` returns `response` or raises `side_effect`."""
    patcher = patch("services.metadata_resolver.httpx.AsyncClient")
    mock_client_class = patcher.start()
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.get.side_effect = side_effect
    else:
        mock_client.get.return_value = response
    mock_client.__aenter__.return_value = mock_client
    mock_client.__aexit__.return_value = None
    mock_client_class.return_value = mock_client
    return patcher, mock_client_class, mock_client


# =============================================================================
# extract_metadata
# =============================================================================


class TestExtractMetadata:
    """Tests for the pure HTML extraction."""

    def test__open_graph_preferred_over_fallbacks(self) -> None:
        """og: properties win over twitter cards and the <title> element."""
        html = """
        <html><head>
            <title>Plain Title</title>
            <meta name="twitter:title" content="Twitter Title">
            <meta property="og:title" content="OG Title">
            <meta name="description" content="Plain description">
            <meta property="og:description" content="OG description">
            <meta property="og:image" content="https://cdn.example.com/og.png">
        </head></html>
        """
        metadata = extract_metadata(html, "https://example.com/article")
        assert metadata == Metadata(
            title="OG Title",
            description="OG description",
            image_url="https://cdn.example.com/og.png",
        )

    def test__falls_back_in_order(self) -> None:
        """Without og: tags, twitter cards are used before plain elements."""
        html = """
        <html><head>
            <title>Plain Title</title>
            <meta name="twitter:title" content="Twitter Title">
            <meta name="description" content="Plain description">
            <meta name="twitter:image" content="/img/card.png">
        </head></html>
        """
        metadata = extract_metadata(html, "https://example.com/article")
        assert metadata.title == "Twitter Title"
        assert metadata.description == "Plain description"
        assert metadata.image_url == "https://example.com/img/card.png"

    def test__title_element_and_whitespace(self) -> None:
        """The <title> text is used last and trimmed."""
        html = "<html><head><title>\n   Hello World \n</title></head></html>"
        metadata = extract_metadata(html, "https://example.com")
        assert metadata.title == "Hello World"
        assert metadata.description is None
        assert metadata.image_url is None

    def test__empty_values_are_skipped(self) -> None:
        """A blank og:title does not hide a usable <title>."""
        html = """
        <html><head>
            <meta property="og:title" content="   ">
            <title>Real Title</title>
        </head></html>
        """
        assert extract_metadata(html, "https://example.com").title == "Real Title"

    def test__icon_used_as_last_image_fallback(self) -> None:
        """A favicon link is used when no preview image exists."""
        html = '<html><head><link rel="icon" href="/favicon.ico"></head></html>'
        metadata = extract_metadata(html, "https://example.com/a/b")
        assert metadata.image_url == "https://example.com/favicon.ico"

    def test__non_http_image_dropped(self) -> None:
        """Image references that do not resolve to http(s) are discarded."""
        html = '<html><head><meta property="og:image" content="data:image/png;base64,AAA"></head></html>'
        assert extract_metadata(html, "https://example.com").image_url is None

    def test__long_values_truncated(self) -> None:
        """Title and description are capped."""
        long_title = "t" * (TITLE_MAX_LENGTH + 50)
        long_description = "d" * (DESCRIPTION_MAX_LENGTH + 50)
        html = f"""
        <html><head>
            <title>{long_title}</title>
            <meta name="description" content="{long_description}">
        </head></html>
        """
        metadata = extract_metadata(html, "https://example.com")
        assert metadata.title is not None
        assert len(metadata.title) == TITLE_MAX_LENGTH
        assert metadata.description is not None
        assert len(metadata.description) == DESCRIPTION_MAX_LENGTH

    def test__empty_document(self) -> None:
        """Nothing to extract gives empty metadata."""
        metadata = extract_metadata("", "https://example.com")
        assert metadata.is_empty
        assert metadata == EMPTY_METADATA


# =============================================================================
# SSRF protection
# =============================================================================


class TestPrivateAddresses:
    """Tests for private/internal address detection."""

    @pytest.mark.parametrize(
        "ip",
        ["127.0.0.1", "10.0.0.5", "172.16.3.4", "192.168.1.1", "169.254.169.254", "::1", "0.0.0.0"],
    )
    def test__is_private_ip__internal(self, ip: str) -> None:
        """Loopback, RFC 1918, link-local and unspecified addresses are private."""
        assert is_private_ip(ip) is True

    def test__is_private_ip__public(self) -> None:
        """A public address is allowed."""
        assert is_private_ip(PUBLIC_IP) is False

    def test__is_private_ip__unparseable_is_private(self) -> None:
        """Garbage is treated as private."""
        assert is_private_ip("not-an-ip") is True

    def test__validate_url_not_private__localhost_name(self) -> None:
        """localhost is refused without a DNS lookup."""
        with pytest.raises(SSRFBlockedError):
            validate_url_not_private("http://localhost:8000/admin")

    def test__validate_url_not_private__name_resolving_to_private_ip(self) -> None:
        """A public-looking name that resolves internally is refused."""
        with (
            patch(
                "services.metadata_resolver.socket.getaddrinfo",
                return_value=_addrinfo("10.1.2.3"),
            ),
            pytest.raises(SSRFBlockedError),
        ):
            validate_url_not_private("https://internal.example.com/")

    def test__validate_url_not_private__public(self, public_dns: MagicMock) -> None:
        """A name resolving to a public address passes."""
        validate_url_not_private("https://example.com/")
        public_dns.assert_called_once()

    def test__validate_url_not_private__no_hostname(self) -> None:
        """URLs without a host are invalid."""
        with pytest.raises(ValueError, match="no hostname"):
            validate_url_not_private("not a url")

    def test__validate_url_not_private__unresolvable(self) -> None:
        """DNS failures surface as ValueError."""
        with (
            patch(
                "services.metadata_resolver.socket.getaddrinfo",
                side_effect=socket.gaierror("Name or service not known"),
            ),
            pytest.raises(ValueError, match="Could not resolve"),
        ):
            validate_url_not_private("https://does-not-exist.invalid/")


# =============================================================================
# resolve_metadata
# =============================================================================


class TestResolveMetadata:
    """Tests for fetching and extracting metadata."""

    @pytest.mark.usefixtures("public_dns")
    async def test__resolve_metadata__success(self) -> None:
        """A successful HTML response is parsed."""
        html = '<html><head><title>Example</title><meta name="description" content="Desc"></head></html>'
        patcher, mock_client_class, mock_client = _patch_client(_mock_response(html))
        try:
            metadata = await resolve_metadata("https://example.com/page")
        finally:
            patcher.stop()

        assert metadata.title == "Example"
        assert metadata.description == "Desc"
        mock_client.get.assert_called_once_with("https://example.com/page")
        mock_client_class.assert_called_once_with(
            follow_redirects=True,
            timeout=10.0,
            headers=REQUEST_HEADERS,
            http2=True,
        )

    @pytest.mark.usefixtures("public_dns")
    async def test__resolve_metadata__connection_error(self) -> None:
        """Network errors give empty metadata instead of raising."""
        patcher, _, _ = _patch_client(side_effect=httpx.ConnectError("Connection refused"))
        try:
            metadata = await resolve_metadata("https://example.com/")
        finally:
            patcher.stop()
        assert metadata == EMPTY_METADATA

    @pytest.mark.usefixtures("public_dns")
    async def test__resolve_metadata__http_error_status(self) -> None:
        """Non-2xx responses give empty metadata."""
        patcher, _, _ = _patch_client(_mock_response("<title>Not Found</title>", status_code=404))
        try:
            metadata = await resolve_metadata("https://example.com/missing")
        finally:
            patcher.stop()
        assert metadata == EMPTY_METADATA

    @pytest.mark.usefixtures("public_dns")
    async def test__resolve_metadata__non_html(self) -> None:
        """Non-HTML content is not parsed."""
        patcher, _, _ = _patch_client(
            _mock_response("%PDF-1.4", url="https://example.com/a.pdf", content_type="application/pdf"),
        )
        try:
            metadata = await resolve_metadata("https://example.com/a.pdf")
        finally:
            patcher.stop()
        assert metadata == EMPTY_METADATA

    @pytest.mark.usefixtures("public_dns")
    async def test__resolve_metadata__timeout(self) -> None:
        """A fetch slower than the timeout is abandoned."""

        async def slow_get(*_args: Any, **_kwargs: Any) -> MagicMock:
            await asyncio.sleep(5)
            return _mock_response("<title>Too late</title>")

        patcher, _, _ = _patch_client(side_effect=slow_get)
        try:
            metadata = await resolve_metadata("https://example.com/slow", timeout=0.05)
        finally:
            patcher.stop()
        assert metadata == EMPTY_METADATA

    async def test__resolve_metadata__private_address_not_fetched(self) -> None:
        """Requests to internal addresses are never sent."""
        patcher, _, mock_client = _patch_client(_mock_response("<title>secret</title>"))
        try:
            with patch(
                "services.metadata_resolver.socket.getaddrinfo",
                return_value=_addrinfo("192.168.0.10"),
            ):
                metadata = await resolve_metadata("https://router.example.com/")
        finally:
            patcher.stop()
        assert metadata == EMPTY_METADATA
        mock_client.get.assert_not_called()

    async def test__resolve_metadata__redirect_to_private_address(self) -> None:
        """A redirect landing on an internal address is discarded."""

        def resolve(host: str, *_args: Any) -> list[tuple[Any, ...]]:
            return _addrinfo("127.0.0.1" if host == "internal.example.com" else PUBLIC_IP)

        patcher, _, _ = _patch_client(
            _mock_response("<title>secret</title>", url="https://internal.example.com/"),
        )
        try:
            with patch("services.metadata_resolver.socket.getaddrinfo", side_effect=resolve):
                metadata = await resolve_metadata("https://example.com/redirect")
        finally:
            patcher.stop()
        assert metadata == EMPTY_METADATA

    @pytest.mark.usefixtures("public_dns")
    async def test__resolve_metadata__relative_image_uses_final_url(self) -> None:
        """Relative images resolve against the URL after redirects."""
        html = '<html><head><meta property="og:image" content="cover.jpg"></head></html>'
        patcher, _, _ = _patch_client(
            _mock_response(html, url="https://www.example.com/posts/1/"),
        )
        try:
            metadata = await resolve_metadata("https://example.com/p/1")
        finally:
            patcher.stop()
        assert metadata.image_url == "https://www.example.com/posts/1/cover.jpg"
