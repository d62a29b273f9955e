# portwatch/scans/metadata.py
"""
Title and favicon lookup for a reachable port.

Hosts are tried in order; the first one that answers any HTTP response wins
and the rest are never contacted. Per-host failures are expected (a dev
server often binds only one address family) and are returned as tagged
attempts instead of being raised or logged here.
"""
import asyncio
from typing import List, Optional, Sequence, Union

import httpx
from bs4 import BeautifulSoup

from ..config import CONTAINER_ALIAS
from ..models import Attempt, FetchOutcome, ServiceDetails

DEFAULT_HOSTS = ("127.0.0.1", "[::1]")
DEFAULT_TIMEOUT = 1.5
DEFAULT_FAVICON = "/favicon.ico"
MAX_REDIRECTS = 3

# refused, timed out, malformed response or URL
EXPECTED_ERRORS = (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError)

ICON_SELECTORS = ('link[rel="icon"]', 'link[rel="shortcut icon"]')


def fallback_title(port: int) -> str:
    return f"Service ({port})"


def unknown_details(port: int) -> ServiceDetails:
    return ServiceDetails(title=f"Unknown Service ({port})", favicon=None)


def _same_origin(a: httpx.URL, b: httpx.URL) -> bool:
    return (a.scheme, a.host, a.port) == (b.scheme, b.host, b.port)


async def _get(client: httpx.AsyncClient, url: str, timeout: float) -> httpx.Response:
    resp = await client.get(url, timeout=timeout, follow_redirects=False)
    hops = 0
    # only follow redirects that stay on the probed host:port
    while resp.is_redirect and hops < MAX_REDIRECTS:
        target = resp.url.join(resp.headers["location"])
        if not _same_origin(target, resp.url):
            break
        resp = await client.get(target, timeout=timeout, follow_redirects=False)
        hops += 1
    return resp


def resolve_favicon(href: str, base_url: Union[str, httpx.URL], container_alias: str = CONTAINER_ALIAS) -> str:
    """Resolve *href* against *base_url*, pointing container aliases at localhost."""
    url = httpx.URL(base_url).join(href.strip())
    if container_alias and url.host == container_alias:
        url = url.copy_with(host="localhost")
    return str(url)


def parse_details(
    html: str,
    base_url: Union[str, httpx.URL],
    port: int,
    container_alias: str = CONTAINER_ALIAS,
) -> ServiceDetails:
    soup = BeautifulSoup(html or "", "html.parser")

    tag = soup.find("title")
    title = tag.get_text().strip() if tag else ""

    href: Optional[str] = None
    for selector in ICON_SELECTORS:
        link = soup.select_one(selector)
        if link is not None and link.get("href"):
            href = link["href"]
            break

    return ServiceDetails(
        title=title or fallback_title(port),
        favicon=resolve_favicon(href or DEFAULT_FAVICON, base_url, container_alias),
    )


async def fetch_details(
    port: int,
    client: httpx.AsyncClient,
    hosts: Sequence[str] = DEFAULT_HOSTS,
    timeout: float = DEFAULT_TIMEOUT,
    container_alias: str = CONTAINER_ALIAS,
) -> FetchOutcome:
    attempts: List[Attempt] = []
    for host in hosts:
        url = f"http://{host}:{port}/"
        try:
            # one deadline for the whole attempt, redirects included
            resp = await asyncio.wait_for(_get(client, url, timeout), timeout=timeout)
            details = parse_details(resp.text, resp.url, port, container_alias)
        except asyncio.CancelledError:
            raise
        except EXPECTED_ERRORS as e:
            attempts.append(Attempt(host=host, ok=False, error=e))
            continue
        except Exception as e:
            attempts.append(Attempt(host=host, ok=False, error=e, expected=False))
            continue

        attempts.append(Attempt(host=host, ok=True))
        return FetchOutcome(port=port, details=details, attempts=tuple(attempts))

    return FetchOutcome(port=port, details=unknown_details(port), attempts=tuple(attempts))
