"""
Provisioning Provider Client

Thin adapter over the Render custom-domain API:

    GET    /services/{service_id}/custom-domains
    POST   /services/{service_id}/custom-domains              {"name": ...}
    POST   /services/{service_id}/custom-domains/{id}/verify
    DELETE /services/{service_id}/custom-domains/{id}

Network errors, 5xx and 429 are retried in-call with exponential backoff
(tenacity). Anything still failing surfaces as ProviderTransientError so the
Celery task layer can decide whether to retry the whole unit.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import settings
from app.logging_config import mask_secrets
from app.middleware.metrics import DOMAIN_PROVIDER_CALLS

logger = logging.getLogger("storefront.provider")


# ── Errors ──

class ProviderAPIError(Exception):
    """Provider rejected the request (non-retryable unless subclassed)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderTransientError(ProviderAPIError):
    """Network failure, timeout or 5xx; safe to retry later."""


class ProviderRateLimitError(ProviderTransientError):
    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class ProviderConflictError(ProviderAPIError):
    """The domain already exists at the provider."""


class DomainNotFoundError(ProviderAPIError):
    pass


class InvalidCredentialsError(ProviderAPIError):
    pass


# ── Value objects ──

@dataclass
class DomainObject:
    id: str
    name: str
    verified: bool = False
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "DomainObject":
        # List responses wrap each item as {"customDomain": {...}, "cursor": ...}
        item = data.get("customDomain", data)
        return cls(
            id=str(item["id"]),
            name=str(item.get("name", "")).lower(),
            verified=_is_verified(item),
            raw=item,
        )


@dataclass
class VerifyResult:
    verified: bool
    queued: bool

    @property
    def outcome(self) -> str:
        if self.verified:
            return "verified"
        return "queued" if self.queued else "rejected"


def _is_verified(data: Dict[str, Any]) -> bool:
    if data.get("verified") is True:
        return True
    return str(data.get("verificationStatus", "")).lower() == "verified"


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def _error_message(response: httpx.Response) -> str:
    if not response.content:
        return f"HTTP {response.status_code}"
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:100]}"
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"


class _BackoffWait:
    """Honour Retry-After on 429, otherwise exponential backoff capped at max_delay."""

    def __init__(self, base: float, max_delay: float):
        self.max_delay = max_delay
        self._exponential = wait_exponential(multiplier=base, max=max_delay)

    def __call__(self, retry_state) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = getattr(exc, "retry_after", None)
        if retry_after:
            return min(retry_after, self.max_delay)
        return self._exponential(retry_state)


class ProvisioningProviderClient:
    """
    Render custom-domain API 客戶端封裝

    `transport` lets tests plug in httpx.MockTransport.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        service_id: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.PROVIDER_API_KEY
        self.service_id = service_id if service_id is not None else settings.PROVIDER_SERVICE_ID
        if not self.api_key:
            raise InvalidCredentialsError("PROVIDER_API_KEY not configured")
        if not self.service_id:
            raise InvalidCredentialsError("PROVIDER_SERVICE_ID not configured")

        self.base_url = (base_url or settings.PROVIDER_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.PROVIDER_MAX_RETRIES
        self._wait = _BackoffWait(
            backoff_base if backoff_base is not None else settings.PROVIDER_BACKOFF_BASE_SECONDS,
            backoff_max if backoff_max is not None else settings.PROVIDER_BACKOFF_MAX_SECONDS,
        )
        self._transport = transport

    # ── Public API ──

    def list_domains(self) -> List[DomainObject]:
        domains: List[DomainObject] = []
        params: Dict[str, Any] = {"limit": 100}
        while True:
            response = self._request("list", "GET", self._domains_path(), params=params)
            if response.status_code >= 400:
                raise ProviderAPIError(f"Failed to list domains: {_error_message(response)}", response.status_code)
            page = response.json() or []
            domains.extend(DomainObject.from_api(item) for item in page)

            cursor = page[-1].get("cursor") if page and isinstance(page[-1], dict) else None
            if len(page) < params["limit"] or not cursor:
                break
            params = {"limit": 100, "cursor": cursor}

        logger.debug("Provider lists %d domains", len(domains))
        return domains

    def find_domain_by_name(self, hostname: str) -> Optional[DomainObject]:
        name = hostname.lower()
        for domain in self.list_domains():
            if domain.name == name:
                return domain
        return None

    def add_domain(self, hostname: str) -> DomainObject:
        logger.info("Adding domain at provider: %s", hostname)
        response = self._request("add", "POST", self._domains_path(), json={"name": hostname})

        if response.status_code == 409 or (
            response.status_code in (400, 422) and "already" in _error_message(response).lower()
        ):
            raise ProviderConflictError(f"Domain already exists: {hostname}", response.status_code)
        if response.status_code >= 400:
            raise ProviderAPIError(f"Failed to add domain: {_error_message(response)}", response.status_code)

        data = response.json()
        # Render answers with the created domain plus its redirect sibling
        items = data if isinstance(data, list) else [data]
        created = [DomainObject.from_api(item) for item in items if isinstance(item, dict)]
        if not created:
            raise ProviderAPIError(f"Missing domain id in provider response: {data!r}")
        for domain in created:
            if domain.name == hostname.lower():
                logger.info("Domain added at provider: %s (%s)", domain.name, domain.id)
                return domain
        return created[0]

    def remove_domain(self, domain_id: str) -> None:
        logger.info("Removing domain at provider: %s", domain_id)
        response = self._request("remove", "DELETE", f"{self._domains_path()}/{domain_id}")
        if response.status_code == 404:
            logger.info("Domain %s already absent at provider", domain_id)
            return
        if response.status_code >= 400:
            raise ProviderAPIError(f"Failed to remove domain: {_error_message(response)}", response.status_code)

    def verify_domain(self, domain_id: str) -> VerifyResult:
        response = self._request("verify", "POST", f"{self._domains_path()}/{domain_id}/verify", json={})
        if response.status_code == 404:
            raise DomainNotFoundError(f"Domain {domain_id} not found", 404)
        if response.status_code >= 400:
            raise ProviderAPIError(f"Failed to verify domain: {_error_message(response)}", response.status_code)

        if not response.content:
            return VerifyResult(verified=False, queued=response.status_code == 202)
        data = response.json()
        if not isinstance(data, dict):
            data = {}
        return VerifyResult(
            verified=_is_verified(data),
            queued=response.status_code == 202 or bool(data.get("queued")),
        )

    def domain_status(self, hostname: str) -> Dict[str, Any]:
        domain = self.find_domain_by_name(hostname)
        if domain is None:
            return {"exists": False, "verified": False, "domain_id": None}
        return {"exists": True, "verified": domain.verified, "domain_id": domain.id}

    # ── Transport ──

    def _domains_path(self) -> str:
        return f"/services/{self.service_id}/custom-domains"

    def _request(self, operation: str, method: str, path: str, **kwargs) -> httpx.Response:
        retrying = Retrying(
            retry=retry_if_exception_type(ProviderTransientError),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._wait,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            response = retrying(self._send, method, path, **kwargs)
        except ProviderTransientError:
            DOMAIN_PROVIDER_CALLS.labels(operation=operation, result="transient_error").inc()
            raise
        DOMAIN_PROVIDER_CALLS.labels(
            operation=operation,
            result="ok" if response.status_code < 400 else f"http_{response.status_code}",
        ).inc()
        return response

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        logger.debug("%s %s", method, path)
        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderTransientError(f"Provider request timed out: {e}") from e
        except httpx.TransportError as e:
            raise ProviderTransientError(mask_secrets(f"Provider request failed: {e}")) from e

        if response.status_code == 429:
            raise ProviderRateLimitError("Provider rate limit exceeded", retry_after=_retry_after_seconds(response))
        if response.status_code >= 500:
            raise ProviderTransientError(
                f"Provider error: {_error_message(response)}", status_code=response.status_code
            )
        return response
