"""Pytest configuration, fixtures and in-memory fakes for the domain workflows."""
import os

# Must be set before app.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APP_ENV", "development")

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient, ASGITransport

from app.config import settings
from app.db.base_class import Base
from app.db.session import SessionLocal, engine
from app.models.tenant import Tenant
from app.models.tenant_domain import CanonicalPreference, HostType, MonitoringStatus, TenantDomain
from app.services.dns_checker import DnsTargetChecker
from app.services.domain_notifications import DomainNotifier
from app.services.domain_workflows import DomainWorkflows
from app.services.domain_setup import DomainSetupService
from app.services.health_probe import HealthResult
from app.services.provider_client import DomainObject, DomainNotFoundError, VerifyResult

START = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
PLATFORM_CNAME = "storefronts.onrender.com"
PLATFORM_IP = "216.24.57.1"


# --- Fakes ---

class FakeProvider:
    """In-memory provider; records every mutating call."""

    def __init__(self, verify_marks_verified=False):
        self.domains = {}
        self.added = []
        self.removed = []
        self.verify_calls = []
        self.verify_marks_verified = verify_marks_verified
        self._next_id = 1

    def seed(self, name, verified=False):
        domain = DomainObject(id=f"cdm-{self._next_id}", name=name, verified=verified)
        self._next_id += 1
        self.domains[name] = domain
        return domain

    @property
    def mutations(self):
        return len(self.added) + len(self.removed) + len(self.verify_calls)

    def find_domain_by_name(self, hostname):
        return self.domains.get(hostname.lower())

    def add_domain(self, hostname):
        self.added.append(hostname)
        return self.seed(hostname)

    def remove_domain(self, domain_id):
        self.removed.append(domain_id)
        for name, domain in list(self.domains.items()):
            if domain.id == domain_id:
                del self.domains[name]

    def verify_domain(self, domain_id):
        self.verify_calls.append(domain_id)
        for domain in self.domains.values():
            if domain.id == domain_id:
                if self.verify_marks_verified:
                    domain.verified = True
                return VerifyResult(verified=domain.verified, queued=not domain.verified)
        raise DomainNotFoundError(f"Domain {domain_id} not found", 404)


class FakeProbe:
    """Returns queued results (or `default`) and records every probed hostname."""

    def __init__(self, default=False):
        self.default = default
        self.queue = []
        self.calls = []

    def check_health(self, hostname):
        self.calls.append(hostname)
        healthy = self.queue.pop(0) if self.queue else self.default
        return HealthResult(domain=hostname, healthy=healthy, ssl_ready=healthy, dns_resolved=True)


class RecordingScheduler:
    def __init__(self):
        self.enqueued = []

    def enqueue(self, unit, params, delay=None):
        self.enqueued.append((unit, dict(params), delay))

    def of(self, unit):
        return [entry for entry in self.enqueued if entry[0] == unit]

    def clear(self):
        self.enqueued.clear()


class FakeDns:
    """Static zone: `records[(name, rdtype)]` -> values; anything else has no records."""

    def __init__(self):
        self.records = {}
        self.queries = []

    def point_to_platform(self, hostname):
        self.records[(hostname, "A")] = [PLATFORM_IP]
        self.records[("www." + hostname, "CNAME")] = [PLATFORM_CNAME]

    def lookup(self, hostname, rdtype, timeout):
        self.queries.append((hostname, rdtype))
        return list(self.records.get((hostname, rdtype), []))


class RecordingNotifier(DomainNotifier):
    def __init__(self):
        self.sent = []

    def send(self, notification):
        self.sent.append(notification)

    @property
    def events(self):
        return [n.event for n in self.sent]


class FakeClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


# --- Fixtures ---

@pytest.fixture
def db():
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def probe():
    return FakeProbe()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dns():
    return FakeDns()


@pytest.fixture
def dns_checker(dns):
    return DnsTargetChecker(cname_target=PLATFORM_CNAME, apex_ip=PLATFORM_IP, lookup=dns.lookup)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def workflows(db, provider, probe, scheduler, clock, dns_checker, notifier):
    return DomainWorkflows(
        db,
        provider=provider,
        probe=probe,
        scheduler=scheduler,
        clock=clock,
        dns_checker=dns_checker,
        notifier=notifier,
    )


@pytest.fixture
def setup_service(db, provider, probe, scheduler, clock, dns_checker, notifier):
    return DomainSetupService(
        db,
        scheduler=scheduler,
        provider_factory=lambda: provider,
        clock=clock,
        probe_factory=lambda: probe,
        dns_checker_factory=lambda: dns_checker,
        notifier=notifier,
    )


@pytest.fixture
def make_domain(db):
    def _make(
        hostname="example.com",
        canonical_preference=CanonicalPreference.APEX,
        plan="premium",
        tenant_status="active",
        host_type=HostType.CUSTOM_DOMAIN,
        monitoring_status=MonitoringStatus.INACTIVE,
        monitoring_enabled=False,
        **fields,
    ):
        tenant = Tenant(id=uuid.uuid4(), name=f"Shop {hostname}", plan=plan, status=tenant_status)
        record = TenantDomain(
            tenant=tenant,
            hostname=hostname,
            canonical_preference=canonical_preference,
            host_type=host_type,
            monitoring_status=monitoring_status,
            monitoring_enabled=monitoring_enabled,
            **fields,
        )
        db.add(tenant)
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    return _make


@pytest.fixture
def monitoring_domain(make_domain):
    """A premium tenant mid-session: registered, monitoring, no checks yet."""
    return make_domain(
        monitoring_status=MonitoringStatus.MONITORING,
        monitoring_enabled=True,
        provider_domain_added=True,
        check_attempts=0,
    )


@pytest.fixture
async def client(db, provider, probe, dns_checker, scheduler):
    """
    Async HTTP client against the internal API.
    get_db / scheduler / provider / probe / DNS checker are overridden with the test session and fakes.
    """
    from app.main import app as fastapi_app
    from app.api import deps

    def _override_get_db():
        yield db

    fastapi_app.dependency_overrides[deps.get_db] = _override_get_db
    fastapi_app.dependency_overrides[deps.get_scheduler] = lambda: scheduler
    fastapi_app.dependency_overrides[deps.get_provider_factory] = lambda: (lambda: provider)
    fastapi_app.dependency_overrides[deps.get_probe_factory] = lambda: (lambda: probe)
    fastapi_app.dependency_overrides[deps.get_dns_checker_factory] = lambda: (lambda: dns_checker)

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def service_headers():
    return {"Authorization": f"Bearer {settings.INTERNAL_API_TOKEN}"}
