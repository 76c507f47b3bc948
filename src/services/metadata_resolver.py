"""Fetch a web page and extract its title, description, and preview image."""
import asyncio
import ipaddress
import logging
import socket
from dataclasses import dataclass, field
from enum import StrEnum
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup, ParserRejectedMarkup
from bs4.element import Tag

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
TITLE_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 1024

REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/114.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,*/*;q=0.8"
    ),
    "Accept-Language": "en",
}


class SSRFBlockedError(Exception):
    """Raised when a URL targets a private/internal network address."""

    pass


@dataclass(frozen=True)
class Metadata:
    """Metadata extracted from a page. Any field may be None."""

    title: str | None = None
    description: str | None = None
    image_url: str | None = None

    @property
    def is_empty(self) -> bool:
        """True when nothing could be extracted."""
        return self.title is None and self.description is None and self.image_url is None


EMPTY_METADATA = Metadata()


class MetadataSource(StrEnum):
    """Where an extraction rule reads its value from."""

    OPEN_GRAPH = "open_graph"
    NAMED_META = "named_meta"
    TWITTER_CARD = "twitter_card"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ExtractionRule:
    """
    A single element lookup used during extraction.

    Matches the first element named `tag` with the given attributes. The value is
    read from `value_attr`, or from the element's text when `value_attr` is None.
    """

    source: MetadataSource
    tag: str
    attrs: dict[str, str] = field(default_factory=dict, hash=False)
    value_attr: str | None = "content"


TITLE_RULES: tuple[ExtractionRule, ...] = (
    ExtractionRule(MetadataSource.OPEN_GRAPH, "meta", {"property": "og:title"}),
    ExtractionRule(MetadataSource.NAMED_META, "meta", {"name": "og:title"}),
    ExtractionRule(MetadataSource.TWITTER_CARD, "meta", {"name": "twitter:title"}),
    ExtractionRule(MetadataSource.FALLBACK, "title", value_attr=None),
)

DESCRIPTION_RULES: tuple[ExtractionRule, ...] = (
    ExtractionRule(MetadataSource.OPEN_GRAPH, "meta", {"property": "og:description"}),
    ExtractionRule(MetadataSource.NAMED_META, "meta", {"name": "og:description"}),
    ExtractionRule(MetadataSource.TWITTER_CARD, "meta", {"name": "twitter:description"}),
    ExtractionRule(MetadataSource.FALLBACK, "meta", {"name": "description"}),
)

IMAGE_RULES: tuple[ExtractionRule, ...] = (
    ExtractionRule(MetadataSource.OPEN_GRAPH, "meta", {"property": "og:image"}),
    ExtractionRule(MetadataSource.NAMED_META, "meta", {"name": "og:image"}),
    ExtractionRule(MetadataSource.TWITTER_CARD, "meta", {"name": "twitter:image"}),
    ExtractionRule(MetadataSource.TWITTER_CARD, "meta", {"name": "twitter:image:src"}),
    ExtractionRule(MetadataSource.NAMED_META, "meta", {"itemprop": "image"}),
    ExtractionRule(MetadataSource.FALLBACK, "link", {"rel": "image_src"}, value_attr="href"),
    ExtractionRule(MetadataSource.FALLBACK, "link", {"rel": "icon"}, value_attr="href"),
    ExtractionRule(
        MetadataSource.FALLBACK, "link", {"rel": "shortcut icon"}, value_attr="href",
    ),
)


def is_private_ip(ip_str: str) -> bool:
    """
    Check if an IP address is private, loopback, or otherwise internal.

    Unparseable addresses count as private.
    """
    try:
        ip = ipaddress.ip_address(ip_str)
    except ValueError:
        return True
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


def validate_url_not_private(url: str) -> None:
    """
    Validate that a URL does not target a private/internal network.

    Resolves the hostname and checks every returned address, so a public name
    pointing at an internal IP is refused as well. Blocking; call it off-loop.

    Args:
        url: The URL to validate.

    Raises:
        SSRFBlockedError: If the URL targets a private network.
        ValueError: If the URL has no hostname or the hostname does not resolve.
    """
    hostname = urlparse(url).hostname
    if not hostname:
        raise ValueError(f"Invalid URL (no hostname): {url}")

    if hostname.lower() in ("localhost", "localhost.localdomain"):
        raise SSRFBlockedError(f"Blocked request to localhost: {url}")

    try:
        addrinfo = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise ValueError(f"Could not resolve hostname: {hostname}") from e

    for _, _, _, _, sockaddr in addrinfo:
        ip_str = str(sockaddr[0])
        if is_private_ip(ip_str):
            raise SSRFBlockedError(
                f"Blocked request to private/internal address: {url} resolves to {ip_str}",
            )


def _first_value(soup: BeautifulSoup, rules: tuple[ExtractionRule, ...]) -> str | None:
    """Return the first non-empty trimmed value produced by `rules`, in order."""
    for rule in rules:
        element = soup.find(rule.tag, attrs=rule.attrs)
        if not isinstance(element, Tag):
            continue
        if rule.value_attr is None:
            value = element.get_text()
        else:
            value = element.get(rule.value_attr)
            if isinstance(value, list):
                value = " ".join(value)
        if value and value.strip():
            return value.strip()
    return None


def _absolute_image_url(raw: str, base_url: str) -> str | None:
    """Resolve an image reference against the page URL, or None if it is unusable."""
    try:
        resolved = urljoin(base_url, raw)
        parsed = urlparse(resolved)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return resolved


def extract_metadata(html: str, base_url: str) -> Metadata:
    """
    Extract title, description, and preview image from HTML.

    Pure function with no I/O. Each field takes the first rule in TITLE_RULES,
    DESCRIPTION_RULES, or IMAGE_RULES that yields a non-empty value. Title and
    description are truncated; the image reference is made absolute against
    `base_url` and dropped if it is not an http(s) URL.

    Args:
        html:
            Raw HTML string to parse.
        base_url:
            URL the HTML was served from (after redirects).

    Returns:
        Metadata with any fields that could be found.
    """
    soup = BeautifulSoup(html, "lxml")

    title = _first_value(soup, TITLE_RULES)
    description = _first_value(soup, DESCRIPTION_RULES)
    raw_image = _first_value(soup, IMAGE_RULES)

    return Metadata(
        title=title[:TITLE_MAX_LENGTH] if title else None,
        description=description[:DESCRIPTION_MAX_LENGTH] if description else None,
        image_url=_absolute_image_url(raw_image, base_url) if raw_image else None,
    )


async def _fetch_and_extract(url: str, timeout: float) -> Metadata:  # noqa: ASYNC109
    await asyncio.to_thread(validate_url_not_private, url)

    async with httpx.AsyncClient(
        follow_redirects=True,
        timeout=timeout,
        headers=REQUEST_HEADERS,
        http2=True,
    ) as client:
        response = await client.get(url)

    final_url = str(response.url)
    if final_url != url:
        await asyncio.to_thread(validate_url_not_private, final_url)

    if not response.is_success:
        logger.debug("Metadata fetch for %s returned HTTP %s", url, response.status_code)
        return EMPTY_METADATA

    content_type = response.headers.get("content-type", "")
    if "html" not in content_type.lower():
        logger.debug("Skipping metadata for %s: content type %r", url, content_type)
        return EMPTY_METADATA

    return extract_metadata(response.text, final_url)


async def resolve_metadata(url: str, timeout: float = DEFAULT_TIMEOUT) -> Metadata:  # noqa: ASYNC109
    """
    Fetch `url` and extract its metadata. Never raises.

    The whole operation (DNS lookup, connect, read, parse) is bounded by
    `timeout` seconds. URLs resolving to private or internal addresses are
    refused, before the request and again after redirects.

    Returns:
        Extracted Metadata, or EMPTY_METADATA on any failure.
    """
    try:
        async with asyncio.timeout(timeout):
            return await _fetch_and_extract(url, timeout)
    except SSRFBlockedError as e:
        logger.warning("Metadata fetch blocked: %s", e)
    except TimeoutError:
        logger.debug("Metadata fetch timed out after %ss for %s", timeout, url)
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
        logger.debug("Metadata fetch failed for %s: %s", url, e)
    except ParserRejectedMarkup as e:
        logger.debug("Could not parse HTML from %s: %s", url, e)
    return EMPTY_METADATA
