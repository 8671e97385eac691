import httpx
import pytest

from testpilot.models.proxy import Cookie, ProxyRequest
from testpilot.services.proxy_service import (
    ProxyError,
    ProxyService,
    is_internal_host,
    parse_set_cookie,
    split_set_cookie_header,
)


def _service(handler, **kwargs):
    return ProxyService(transport=httpx.MockTransport(handler), allow_internal_hosts=False, **kwargs)


@pytest.mark.parametrize(
    "host,blocked",
    [
        ("localhost", True),
        ("127.0.0.1", True),
        ("10.0.0.8", True),
        ("192.168.1.20", True),
        ("172.16.4.1", True),
        ("printer.local", True),
        ("db.internal", True),
        ("api.example.com", False),
        ("172.20.0.1", False),
    ],
)
def test_is_internal_host(host, blocked):
    assert is_internal_host(host) is blocked


@pytest.mark.parametrize(
    "url,status_code",
    [
        ("", 400),
        ("not a url", 400),
        ("http://localhost:8000/x", 403),
        ("https://10.1.2.3/", 403),
        ("ftp://files.example.com/a", 403),
    ],
)
def test_validate_url_rejects(url, status_code):
    with pytest.raises(ProxyError) as exc_info:
        ProxyService(allow_internal_hosts=False).validate_url(url)
    assert exc_info.value.status_code == status_code


def test_internal_hosts_can_be_allowed():
    target = ProxyService(allow_internal_hosts=True).validate_url("http://localhost:8000/x")
    assert target.host == "localhost"


def test_split_set_cookie_header():
    header = 'a=1; Path=/, b="x,y"; Secure, c=3; Expires=Wed, 21 Oct 2026 07:28:00 GMT'
    assert split_set_cookie_header(header) == [
        "a=1; Path=/",
        'b="x,y"; Secure',
        "c=3; Expires=Wed, 21 Oct 2026 07:28:00 GMT",
    ]


def test_parse_set_cookie_attributes():
    cookie = parse_set_cookie(
        "session=abc; Path=/App; Max-Age=3600; Secure; HttpOnly; SameSite=Lax", "api.example.com"
    )
    assert cookie == Cookie(
        name="session",
        value="abc",
        domain="api.example.com",
        path="/App",
        max_age=3600,
        secure=True,
        http_only=True,
        same_site="lax",
    )
    assert parse_set_cookie("novalue", "h") is None
    assert parse_set_cookie("a=1; Domain=Example.com", "h").domain == "example.com"


@pytest.mark.asyncio
async def test_forward_json_response_with_cookies():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["cookie"] = request.headers.get("cookie")
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = request.content
        return httpx.Response(
            201,
            json={"id": 5},
            headers=[("set-cookie", "session=abc; Path=/"), ("set-cookie", "theme=dark")],
        )

    request = ProxyRequest(
        url="https://api.example.com/items",
        method="post",
        headers={"Authorization": "Bearer t"},
        body='{"name": "x"}',
        cookies=[Cookie(name="a", value="1"), Cookie(name="b", value="2")],
    )
    response = await _service(handler).forward(request)

    assert seen == {"method": "POST", "cookie": "a=1; b=2", "auth": "Bearer t", "body": b'{"name": "x"}'}
    assert response.status == 201
    assert response.status_text == "Created"
    assert response.body == {"id": 5}
    assert [(c.name, c.value, c.domain) for c in response.cookies] == [
        ("session", "abc", "api.example.com"),
        ("theme", "dark", "api.example.com"),
    ]


@pytest.mark.asyncio
async def test_forward_text_response():
    def handler(request):
        return httpx.Response(200, text="pong", headers={"content-type": "text/plain"})

    response = await _service(handler).forward(ProxyRequest(url="https://api.example.com/ping"))
    assert response.body == "pong"
    assert response.cookies == []


@pytest.mark.asyncio
async def test_forward_invalid_json_body_is_none():
    def handler(request):
        return httpx.Response(200, content=b"{oops", headers={"content-type": "application/json"})

    response = await _service(handler).forward(ProxyRequest(url="https://api.example.com/"))
    assert response.body is None


@pytest.mark.asyncio
async def test_forward_follows_redirects():
    def handler(request):
        if request.url.path == "/old":
            return httpx.Response(302, headers={"location": "https://api.example.com/new"})
        return httpx.Response(200, json={"path": request.url.path})

    response = await _service(handler).forward(ProxyRequest(url="https://api.example.com/old"))
    assert response.body == {"path": "/new"}


@pytest.mark.asyncio
async def test_redirect_to_internal_host_is_rejected():
    requested = []

    def handler(request):
        requested.append(str(request.url))
        if request.url.host == "api.example.com":
            return httpx.Response(302, headers={"location": "http://127.0.0.1/admin"})
        return httpx.Response(200, text="secret")

    with pytest.raises(ProxyError) as exc_info:
        await _service(handler).forward(ProxyRequest(url="https://api.example.com/start"))
    assert exc_info.value.status_code == 403
    assert requested == ["https://api.example.com/start"]


@pytest.mark.asyncio
async def test_redirect_to_unsupported_scheme_is_rejected():
    def handler(request):
        return httpx.Response(301, headers={"location": "ftp://files.example.com/dump"})

    with pytest.raises(ProxyError) as exc_info:
        await _service(handler).forward(ProxyRequest(url="https://api.example.com/start"))
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_relative_redirect_and_cookie_domain_of_final_host():
    def handler(request):
        if request.url.host == "api.example.com":
            return httpx.Response(302, headers={"location": "https://auth.example.com/login"})
        if request.url.path == "/login":
            return httpx.Response(307, headers={"location": "/done"})
        return httpx.Response(200, json={"path": request.url.path}, headers={"set-cookie": "sid=1"})

    response = await _service(handler).forward(ProxyRequest(url="https://api.example.com/start"))
    assert response.body == {"path": "/done"}
    assert response.cookies[0].domain == "auth.example.com"


@pytest.mark.asyncio
async def test_see_other_redirect_switches_to_get():
    seen = []

    def handler(request):
        seen.append((request.method, request.content, request.headers.get("authorization")))
        if request.url.path == "/submit":
            return httpx.Response(303, headers={"location": "https://other.example.com/result"})
        return httpx.Response(200, text="ok")

    request = ProxyRequest(
        url="https://api.example.com/submit",
        method="POST",
        headers={"Authorization": "Bearer t"},
        body="payload",
    )
    response = await _service(handler).forward(request)
    assert response.body == "ok"
    assert seen == [("POST", b"payload", "Bearer t"), ("GET", b"", None)]


@pytest.mark.asyncio
async def test_redirect_loop_is_bad_gateway():
    def handler(request):
        return httpx.Response(302, headers={"location": "/again"})

    with pytest.raises(ProxyError) as exc_info:
        await _service(handler).forward(ProxyRequest(url="https://api.example.com/again"))
    assert exc_info.value.status_code == 502
    assert "redirects" in exc_info.value.message


@pytest.mark.asyncio
async def test_transport_failure_is_bad_gateway():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProxyError) as exc_info:
        await _service(handler).forward(ProxyRequest(url="https://api.example.com/"))
    assert exc_info.value.status_code == 502
    assert "connection refused" in exc_info.value.message
