"""
Domain Health Probe

Answers "is this hostname really serving the storefront over valid TLS?":
  1. DNS: the name resolves (A / AAAA, following CNAMEs)
  2. TLS: an HTTPS request completes a verified handshake
  3. HTTP: the final response after ≤ 3 redirects is 200

check_health never raises: any failure yields an unhealthy result.
"""
import logging
import ssl
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

import dns.exception
import dns.resolver
import httpx

from app.config import settings

logger = logging.getLogger("storefront.health")


@dataclass
class HealthResult:
    domain: str
    healthy: bool = False
    ssl_ready: bool = False
    dns_resolved: bool = False
    addresses: List[str] = field(default_factory=list)
    status_code: Optional[int] = None
    final_url: Optional[str] = None
    redirect_count: int = 0
    response_time: Optional[float] = None
    error: Optional[str] = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> dict:
        return asdict(self)


def _is_tls_error(exc: BaseException) -> bool:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, ssl.SSLError):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    message = str(exc).lower()
    return "ssl" in message or "certificate" in message or "tls" in message


def resolve_addresses(hostname: str, timeout: float) -> List[str]:
    resolver = dns.resolver.Resolver()
    resolver.lifetime = timeout
    addresses: List[str] = []
    for rdtype in ("A", "AAAA"):
        try:
            answers = resolver.resolve(hostname, rdtype)
        except dns.exception.DNSException as e:
            logger.debug("DNS %s lookup failed for %s: %s", rdtype, hostname, e)
            continue
        addresses.extend(rdata.to_text() for rdata in answers)
    return addresses


class DomainHealthChecker:
    def __init__(
        self,
        timeout: Optional[float] = None,
        max_redirects: Optional[int] = None,
        verify_tls: Optional[bool] = None,
        resolver: Optional[Callable[[str, float], List[str]]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.HEALTH_CHECK_TIMEOUT_SECONDS
        self.max_redirects = max_redirects if max_redirects is not None else settings.HEALTH_CHECK_MAX_REDIRECTS
        self.verify_tls = verify_tls if verify_tls is not None else settings.HEALTH_CHECK_VERIFY_TLS
        self._resolve = resolver or resolve_addresses
        self._transport = transport

    def check_health(self, hostname: str) -> HealthResult:
        domain = (hostname or "").strip().lower()
        result = HealthResult(domain=domain)
        logger.info("Checking health for: %s", domain)

        try:
            result.addresses = self._resolve(domain, self.timeout)
            result.dns_resolved = bool(result.addresses)
            if not result.dns_resolved:
                result.error = "DNS: hostname does not resolve"
                logger.warning("Health check failed for %s: %s", domain, result.error)
                return result

            self._probe_https(domain, result)
        except Exception as e:
            result.healthy = False
            result.error = f"Health check exception: {e}"
            logger.error("Health check exception for %s: %s", domain, e)
            return result

        if result.healthy:
            logger.info(
                "Domain is healthy: %s (%s in %ss)", domain, result.status_code, result.response_time
            )
        else:
            logger.warning(
                "Domain not healthy: %s (status=%s, ssl_ready=%s, error=%s)",
                domain, result.status_code, result.ssl_ready, result.error,
            )
        return result

    def _probe_https(self, domain: str, result: HealthResult) -> None:
        headers = {
            "User-Agent": settings.HEALTH_CHECK_USER_AGENT,
            "Accept": "text/html,*/*",
            "Connection": "close",
        }
        start = time.perf_counter()
        try:
            with httpx.Client(
                timeout=self.timeout,
                verify=self.verify_tls,
                follow_redirects=True,
                max_redirects=self.max_redirects,
                transport=self._transport,
            ) as client:
                response = client.get(f"https://{domain}/", headers=headers)
        except httpx.TooManyRedirects:
            result.ssl_ready = True
            result.error = "Too many redirects"
            return
        except httpx.TimeoutException as e:
            result.error = f"Request timeout: {e}"
            return
        except httpx.HTTPError as e:
            result.ssl_ready = False
            result.error = f"SSL error: {e}" if _is_tls_error(e) else f"Connection error: {e}"
            return
        finally:
            result.response_time = round(time.perf_counter() - start, 3)

        # The handshake against https://<domain> completed
        result.ssl_ready = True
        result.status_code = response.status_code
        result.final_url = str(response.url)
        result.redirect_count = len(response.history)
        result.healthy = response.status_code == 200
