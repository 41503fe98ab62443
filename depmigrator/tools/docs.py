from __future__ import annotations

import logging

import httpx
from bs4 import BeautifulSoup
from bs4.element import NavigableString, Tag

from depmigrator.errors import ArgumentError, UpstreamFailureError

logger = logging.getLogger(__name__)

PKG_GO_DEV_URL = "https://pkg.go.dev/{package}"
DOC_REGION_CLASS = "UnitDoc"


def _has_doc_class(value: str | None) -> bool:
    return value is not None and DOC_REGION_CLASS in value


def extract_text(node: Tag) -> str:
    """Join every non-blank text node under `node` with single spaces."""
    chunks: list[str] = []
    for item in node.descendants:
        # comments, doctypes and script bodies are NavigableString subclasses
        if type(item) is NavigableString:
            text = item.strip()
            if text:
                chunks.append(text)
    return " ".join(chunks)


def extract_package_docs(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    region = soup.find("div", class_=_has_doc_class)
    if region is None:
        raise UpstreamFailureError("Documentation not found in the package page.")
    text = extract_text(region)
    if not text:
        raise UpstreamFailureError("No documentation text found.")
    return text


def fetch_package_docs(
    package: str,
    *,
    client: httpx.Client | None = None,
    url_template: str = PKG_GO_DEV_URL,
    timeout: float = 30.0,
) -> str:
    if not package or not package.strip():
        raise ArgumentError("Package name cannot be empty.")

    url = url_template.format(package=package.strip())
    owns_client = client is None
    http = client or httpx.Client(timeout=timeout, follow_redirects=True)
    try:
        response = http.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise UpstreamFailureError(
            f"Failed to load the package documentation: HTTP {exc.response.status_code} from {url}"
        ) from exc
    except httpx.HTTPError as exc:
        raise UpstreamFailureError(f"Failed to load the package documentation: {exc}") from exc
    finally:
        if owns_client:
            http.close()

    logger.debug("fetched %s (%d bytes)", url, len(response.text))
    return extract_package_docs(response.text)
