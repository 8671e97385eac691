import re
from typing import List, Optional
import httpx
import structlog
from testpilot.config.settings import settings
from testpilot.models.proxy import Cookie, ProxyRequest, ProxyResponse

logger = structlog.get_logger()


BLOCKED_HOSTS = ("localhost", "127.0.0.1")
BLOCKED_PREFIXES = ("192.168.", "10.", "172.16.")
BLOCKED_SUFFIXES = (".local", ".internal")
ALLOWED_SCHEMES = ("http", "https")
SAME_SITE_VALUES = ("strict", "lax", "none")
MAX_REDIRECTS = 10
_COOKIE_START = re.compile(r"\s*[^=;,\s]+=")


class ProxyError(Exception):
    """A proxied request that was rejected or could not be delivered"""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def is_internal_host(hostname: str) -> bool:
    hostname = hostname.lower()
    return (
        hostname in BLOCKED_HOSTS
        or hostname.startswith(BLOCKED_PREFIXES)
        or hostname.endswith(BLOCKED_SUFFIXES)
    )


def split_set_cookie_header(header: str) -> List[str]:
    """Split a header that may hold several cookies.

    Commas inside double quotes, and commas not followed by a ``name=`` pair
    (as in ``Expires=Wed, 21 Oct 2026``), do not start a new cookie.
    """
    cookies: List[str] = []
    current = ""
    inside_quotes = False
    for index, char in enumerate(header):
        if char == '"':
            inside_quotes = not inside_quotes
            current += char
        elif char == "," and not inside_quotes and _COOKIE_START.match(header, index + 1):
            if current.strip():
                cookies.append(current.strip())
            current = ""
        else:
            current += char
    if current.strip():
        cookies.append(current.strip())
    return cookies or [header]


def parse_set_cookie(cookie_str: str, default_domain: str) -> Optional[Cookie]:
    parts = [part.strip() for part in cookie_str.split(";")]
    name, sep, value = parts[0].partition("=")
    if not sep or not name.strip():
        return None

    cookie = Cookie(name=name.strip(), value=value.strip())
    for part in parts[1:]:
        attribute = part.lower()
        if attribute.startswith("domain="):
            cookie.domain = attribute[len("domain="):]
        elif attribute.startswith("path="):
            cookie.path = part[len("path="):]
        elif attribute.startswith("expires="):
            cookie.expires = part[len("expires="):]
        elif attribute.startswith("max-age="):
            try:
                cookie.max_age = int(attribute[len("max-age="):])
            except ValueError:
                logger.debug("Ignoring invalid cookie max-age", cookie=cookie.name, value=part)
        elif attribute == "secure":
            cookie.secure = True
        elif attribute == "httponly":
            cookie.http_only = True
        elif attribute.startswith("samesite="):
            same_site = attribute[len("samesite="):]
            if same_site in SAME_SITE_VALUES:
                cookie.same_site = same_site

    if not cookie.domain:
        cookie.domain = default_domain
    return cookie


class ProxyService:
    """Forwards requests built by a flow to the target API and hands back cookies"""

    def __init__(
        self,
        timeout: Optional[float] = None,
        allow_internal_hosts: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.proxy_timeout_seconds
        self.allow_internal_hosts = (
            allow_internal_hosts if allow_internal_hosts is not None else settings.proxy_allow_internal_hosts
        )
        self.transport = transport

    def validate_url(self, url: str) -> httpx.URL:
        if not url:
            raise ProxyError("URL is required", 400)
        try:
            target = httpx.URL(url)
        except (httpx.InvalidURL, TypeError, ValueError):
            raise ProxyError("Invalid URL format", 400)
        if not target.host:
            raise ProxyError("Invalid URL format", 400)

        if not self.allow_internal_hosts and is_internal_host(target.host):
            raise ProxyError("Requests to internal networks are not allowed", 403)
        if target.scheme not in ALLOWED_SCHEMES:
            raise ProxyError("Only HTTP and HTTPS protocols are supported", 403)
        return target

    async def forward(self, request: ProxyRequest) -> ProxyResponse:
        target = self.validate_url(request.url)

        headers = dict(request.headers)
        if request.cookies:
            headers["Cookie"] = "; ".join(f"{cookie.name}={cookie.value}" for cookie in request.cookies)

        method = request.method.upper()
        content = request.body or None

        logger.info("Proxying request", method=method, host=target.host)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=False, transport=self.transport
            ) as client:
                redirects = 0
                while True:
                    response = await client.request(method, target, headers=headers, content=content)
                    location = response.headers.get("location")
                    if not response.is_redirect or not location:
                        break
                    await response.aclose()

                    redirects += 1
                    if redirects > MAX_REDIRECTS:
                        logger.warning("Too many redirects", url=request.url, redirects=redirects)
                        raise ProxyError(f"Exceeded maximum of {MAX_REDIRECTS} redirects", 502)

                    next_target = self.validate_url(str(target.join(location)))
                    logger.debug(
                        "Following redirect",
                        status_code=response.status_code,
                        host=next_target.host,
                    )
                    if (response.status_code == 303 and method != "HEAD") or (
                        response.status_code in (301, 302) and method == "POST"
                    ):
                        method = "GET"
                        content = None
                        headers = {
                            key: value
                            for key, value in headers.items()
                            if key.lower() not in ("content-type", "content-length")
                        }
                    if next_target.host != target.host:
                        headers = {key: value for key, value in headers.items() if key.lower() != "authorization"}
                    target = next_target
        except httpx.HTTPError as e:
            logger.error("Error proxying request", url=request.url, error=str(e))
            raise ProxyError(str(e) or "Failed to send request", 502)

        if "application/json" in response.headers.get("content-type", ""):
            try:
                body = response.json()
            except ValueError:
                body = None
        else:
            body = response.text

        cookies: List[Cookie] = []
        for header in response.headers.get_list("set-cookie"):
            for individual in split_set_cookie_header(header):
                cookie = parse_set_cookie(individual, target.host)
                if cookie:
                    cookies.append(cookie)

        logger.info(
            "Proxy request completed",
            method=request.method,
            host=target.host,
            status_code=response.status_code,
            cookies=len(cookies),
        )
        return ProxyResponse(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers),
            body=body,
            cookies=cookies,
        )
