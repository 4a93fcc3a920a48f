"""Tests for common/http.py: status classification, decoding, failover.

使用 httpx.MockTransport 模拟上游，不发出真实网络请求。
"""

from __future__ import annotations

import gzip
from urllib.parse import parse_qs, urlencode

import httpx
import pytest

from common import big5
from common.errors import NoBaseURLError, ParseError, UpstreamStatusError
from conftest import LMS, SEA
from pages import form_field, html_response


class Recorder:
    """MockTransport handler replaying scripted responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "HEAD":
            return httpx.Response(200)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return response

    @property
    def gets(self):
        return [r for r in self.requests if r.method != "HEAD"]


@pytest.mark.asyncio
async def test_get_document_parses_html(make_client):
    handler = Recorder(html_response("<html><body><p id='x'>哈囉</p></body></html>"))
    client = make_client(handler)

    doc = await client.get_document(f"{SEA}/page")
    assert doc.find("p", id="x").get_text() == "哈囉"


@pytest.mark.asyncio
async def test_big5_body_is_decoded(make_client):
    handler = Recorder(html_response("<html><body><p>國立臺北大學</p></body></html>", big5_encoded=True))
    client = make_client(handler)

    doc = await client.get_document(f"{SEA}/page")
    assert doc.find("p").get_text() == "國立臺北大學"


@pytest.mark.asyncio
async def test_undeclared_gzip_body_is_decompressed(make_client):
    raw = gzip.compress("<html><body><p>壓縮</p></body></html>".encode("utf-8"))
    handler = Recorder(
        httpx.Response(200, content=raw, headers={"Content-Type": "text/html; charset=utf-8"})
    )
    client = make_client(handler)

    doc = await client.get_document(f"{SEA}/page")
    assert doc.find("p").get_text() == "壓縮"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403, 404])
async def test_permanent_status_is_not_retried(make_client, fake_sleep, status):
    handler = Recorder(html_response("nope", status_code=status))
    client = make_client(handler, max_retries=5)

    with pytest.raises(UpstreamStatusError) as excinfo:
        await client.get_document(f"{SEA}/missing")

    assert excinfo.value.status_code == status
    assert excinfo.value.permanent
    assert len(handler.gets) == 1
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_transient_status_is_retried_until_success(make_client, fake_sleep):
    handler = Recorder(
        html_response("busy", status_code=503),
        html_response("busy", status_code=502),
        html_response("<p>ok</p>"),
    )
    client = make_client(handler, max_retries=5)

    doc = await client.get_document(f"{SEA}/page")
    assert doc.find("p").get_text() == "ok"
    assert len(handler.gets) == 3
    assert len(fake_sleep.delays) == 2


@pytest.mark.asyncio
async def test_transient_status_exhausts_retries(make_client):
    handler = Recorder(html_response("busy", status_code=504))
    client = make_client(handler, max_retries=2)

    with pytest.raises(UpstreamStatusError) as excinfo:
        await client.get_document(f"{SEA}/page")
    assert excinfo.value.status_code == 504
    assert len(handler.gets) == 3


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after(make_client, fake_sleep):
    handler = Recorder(
        httpx.Response(429, headers={"Retry-After": "7"}),
        html_response("<p>ok</p>"),
    )
    client = make_client(handler, max_retries=3)

    await client.get_document(f"{SEA}/page")
    # 先等 Retry-After 的 7 秒，再是一次退避
    assert fake_sleep.delays[0] == 7
    assert len(fake_sleep.delays) == 2


@pytest.mark.asyncio
async def test_network_error_is_retried(make_client):
    calls = 0

    def handler(request):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise httpx.ConnectError("refused", request=request)
        return html_response("<p>ok</p>")

    client = make_client(handler, max_retries=2)
    doc = await client.get_document(f"{SEA}/page")
    assert doc.find("p").get_text() == "ok"
    assert calls == 2


@pytest.mark.asyncio
async def test_post_form_raw_sends_body_verbatim(make_client):
    handler = Recorder(html_response("<p>ok</p>"))
    client = make_client(handler)
    body = "qYear=113&cour=" + big5.encode_query("程式設計")

    await client.domain("sea").post_form_document_raw("/query", body)

    request = handler.gets[0]
    assert request.method == "POST"
    assert str(request.url) == f"{SEA}/query"
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert form_field(request, "cour") == ["程式設計"]
    assert form_field(request, "qYear") == ["113"]


@pytest.mark.asyncio
async def test_post_form_encodes_mapping(make_client):
    handler = Recorder(html_response("<p>ok</p>"))
    client = make_client(handler)
    form = {"qYear": "113", "cour": "微積分 A&B"}

    doc = await client.domain("sea").post_form_document("/query", form)

    assert doc.find("p").get_text() == "ok"
    request = handler.gets[0]
    assert request.method == "POST"
    assert str(request.url) == f"{SEA}/query"
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert request.content == urlencode(form).encode("ascii")
    assert parse_qs(request.content.decode("ascii")) == {
        "qYear": ["113"],
        "cour": ["微積分 A&B"],
    }


@pytest.mark.asyncio
async def test_post_form_by_url_is_retried(make_client, fake_sleep):
    handler = Recorder(
        html_response("busy", status_code=503),
        html_response("<p>ok</p>"),
    )
    client = make_client(handler, max_retries=2)

    doc = await client.post_form_document(f"{LMS}/search", {"k": "v"})

    assert doc.find("p").get_text() == "ok"
    assert [r.content for r in handler.gets] == [b"k=v", b"k=v"]
    assert all(
        r.headers["Content-Type"] == "application/x-www-form-urlencoded" for r in handler.gets
    )
    assert len(fake_sleep.delays) == 1


@pytest.mark.asyncio
async def test_corrupt_gzip_body_fails_without_retry(make_client, fake_sleep):
    """损坏的 gzip 内容视为无法解析，不重试"""
    handler = Recorder(
        httpx.Response(
            200,
            content=b"\x1f\x8bnot really gzip",
            headers={"Content-Type": "text/html; charset=utf-8"},
        )
    )
    client = make_client(handler, max_retries=5)

    with pytest.raises(ParseError):
        await client.get_document(f"{SEA}/page")

    assert len(handler.gets) == 1
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_requests_carry_browser_headers(make_client):
    handler = Recorder(html_response("<p>ok</p>"))
    client = make_client(handler)

    await client.get_document(f"{SEA}/page")
    request = handler.gets[0]
    assert request.headers["User-Agent"].startswith("Mozilla/5.0")
    assert "zh-TW" in request.headers["Accept-Language"]


@pytest.mark.asyncio
async def test_domain_client_fails_over_to_second_host(make_client):
    primary, secondary = "http://a.test", "http://b.test"
    seen = []

    def handler(request):
        seen.append((request.method, request.url.host))
        if request.url.host == "a.test":
            return httpx.Response(503)
        return html_response("<p>from b</p>")

    client = make_client(handler, base_urls={"sea": [primary, secondary]})
    domain = client.domain("sea")

    doc = await domain.get_document("/page")
    assert doc.find("p").get_text() == "from b"
    assert domain.url_cache.get_cached() == secondary
    assert ("GET", "a.test") not in seen


@pytest.mark.asyncio
async def test_domain_client_clears_cache_and_reprobes_after_failure(make_client):
    primary, secondary = "http://a.test", "http://b.test"
    state = {"a_down": False}
    seen = []

    def handler(request):
        seen.append((request.method, request.url.host))
        if request.url.host == "a.test" and state["a_down"]:
            return httpx.Response(503)
        return html_response(f"<p>{request.url.host}</p>")

    client = make_client(handler, base_urls={"sea": [primary, secondary]})
    domain = client.domain("sea")

    assert (await domain.get_document("/x")).find("p").get_text() == "a.test"
    state["a_down"] = True
    assert (await domain.get_document("/x")).find("p").get_text() == "b.test"
    assert domain.url_cache.get_cached() == secondary

    seen.clear()
    await domain.get_document("/x")
    assert seen == [("GET", "b.test")]


@pytest.mark.asyncio
async def test_domain_without_candidates_fails_without_retry(make_client, fake_sleep):
    client = make_client(Recorder(html_response("")), base_urls={"sea": [SEA]})

    with pytest.raises(NoBaseURLError):
        await client.domain("lms").get_document("/x")
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_domain_client_is_created_once(make_client):
    client = make_client(Recorder(html_response("")))
    assert client.domain("lms") is client.domain("lms")
    assert client.domain("lms").url_cache.candidates == (LMS,)
