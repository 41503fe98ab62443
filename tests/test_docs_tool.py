from __future__ import annotations

import httpx
import pytest

from depmigrator.errors import ArgumentError, UpstreamFailureError
from depmigrator.tools.docs import extract_package_docs, fetch_package_docs

PAGE = """
<html><body>
  <header>pkg.go.dev navigation</header>
  <div class="Documentation UnitDoc">
    <h2>Overview</h2>
    <p>Package zerolog provides a   lightweight logger.</p>
    <!-- a comment that should not appear -->
    <pre>log.Info().Msg("hello")</pre>
  </div>
  <footer>footer text</footer>
</body></html>
"""


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_extracts_doc_region_text():
    text = extract_package_docs(PAGE)

    assert text == 'Overview Package zerolog provides a   lightweight logger. log.Info().Msg("hello")'
    assert "navigation" not in text
    assert "comment" not in text


def test_fetch_uses_pkg_go_dev_url():
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, text=PAGE)

    text = fetch_package_docs("github.com/rs/zerolog", client=_client(handler))

    assert seen == ["https://pkg.go.dev/github.com/rs/zerolog"]
    assert text.startswith("Overview")


def test_missing_doc_region():
    client = _client(lambda request: httpx.Response(200, text="<html><body><div>no docs</div></body></html>"))
    with pytest.raises(UpstreamFailureError):
        fetch_package_docs("example.com/pkg", client=client)


def test_empty_doc_region():
    client = _client(lambda request: httpx.Response(200, text='<div class="UnitDoc">   </div>'))
    with pytest.raises(UpstreamFailureError):
        fetch_package_docs("example.com/pkg", client=client)


def test_http_error_status():
    client = _client(lambda request: httpx.Response(404, text="not found"))
    with pytest.raises(UpstreamFailureError) as exc_info:
        fetch_package_docs("example.com/missing", client=client)
    assert "404" in str(exc_info.value)


def test_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamFailureError):
        fetch_package_docs("example.com/pkg", client=_client(handler))


def test_empty_package_name():
    with pytest.raises(ArgumentError):
        fetch_package_docs("")
