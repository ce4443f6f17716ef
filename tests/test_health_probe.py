"""DomainHealthChecker with a stub resolver and httpx.MockTransport."""
import httpx

from app.services.health_probe import DomainHealthChecker


def _resolver(addresses):
    return lambda hostname, timeout: list(addresses)


def _checker(handler, addresses=("93.184.216.34",)):
    return DomainHealthChecker(
        timeout=2,
        max_redirects=3,
        resolver=_resolver(addresses),
        transport=httpx.MockTransport(handler),
    )


def test_healthy_domain():
    result = _checker(lambda request: httpx.Response(200, text="<html>shop</html>")).check_health("Example.com")

    assert result.domain == "example.com"
    assert result.healthy is True
    assert result.ssl_ready is True
    assert result.dns_resolved is True
    assert result.status_code == 200
    assert result.final_url == "https://example.com/"


def test_redirect_to_canonical_is_followed():
    def handler(request):
        if request.url.host == "example.com":
            return httpx.Response(301, headers={"Location": "https://www.example.com/"})
        return httpx.Response(200)

    result = _checker(handler).check_health("example.com")
    assert result.healthy is True
    assert result.redirect_count == 1
    assert result.final_url == "https://www.example.com/"


def test_redirect_loop_is_unhealthy():
    handler = lambda request: httpx.Response(302, headers={"Location": "https://example.com/"})
    result = _checker(handler).check_health("example.com")

    assert result.healthy is False
    assert result.error == "Too many redirects"


def test_non_200_is_unhealthy_but_tls_ready():
    result = _checker(lambda request: httpx.Response(503)).check_health("example.com")
    assert result.healthy is False
    assert result.ssl_ready is True
    assert result.status_code == 503


def test_certificate_error_is_not_ssl_ready():
    def handler(request):
        raise httpx.ConnectError("[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed", request=request)

    result = _checker(handler).check_health("example.com")
    assert result.healthy is False
    assert result.ssl_ready is False
    assert result.error.startswith("SSL error")


def test_timeout_is_unhealthy():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    result = _checker(handler).check_health("example.com")
    assert result.healthy is False
    assert result.error.startswith("Request timeout")


def test_unresolvable_hostname_skips_http():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200)

    result = _checker(handler, addresses=()).check_health("nowhere.example")
    assert result.healthy is False
    assert result.dns_resolved is False
    assert calls == []


def test_resolver_exception_never_raises():
    def exploding(hostname, timeout):
        raise RuntimeError("resolver crashed")

    checker = DomainHealthChecker(resolver=exploding, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    result = checker.check_health("example.com")
    assert result.healthy is False
    assert "resolver crashed" in result.error
