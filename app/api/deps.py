import hmac
from typing import Generator, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.db.session import SessionLocal

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def verify_service_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> None:
    """Internal API: callers present INTERNAL_API_TOKEN as a bearer token."""
    if credentials is None or not hmac.compare_digest(
        credentials.credentials.encode(), settings.INTERNAL_API_TOKEN.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid service token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_scheduler():
    from app.services.scheduler import CeleryScheduler
    return CeleryScheduler()


def get_provider_factory():
    """Provider client is built lazily so status reads work without credentials."""
    from app.services.provider_client import ProvisioningProviderClient
    return ProvisioningProviderClient


def get_probe_factory():
    from app.services.health_probe import DomainHealthChecker
    return DomainHealthChecker


def get_dns_checker_factory():
    from app.services.dns_checker import DnsTargetChecker
    return DnsTargetChecker
