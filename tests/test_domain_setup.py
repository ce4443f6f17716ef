"""Setup Initiator and the manual operations around it."""
from datetime import timedelta

import pytest

from app.models.tenant_domain import CanonicalPreference, HostType, MonitoringStatus
from app.services.domain_setup import DomainIneligibleError, DomainNotServingError, DomainSetupError
from app.services.provider_client import ProviderAPIError, ProviderConflictError
from app.services.scheduler import WorkflowUnit


def test_start_setup_registers_canonical_and_starts_monitoring(setup_service, make_domain, provider, scheduler, db):
    record = make_domain(hostname="example.com", canonical_preference=CanonicalPreference.WWW)

    setup_service.start_setup(record.tenant_id)

    db.refresh(record)
    assert provider.added == ["www.example.com"]
    assert record.provider_domain_added is True
    assert record.monitoring_status == MonitoringStatus.MONITORING
    assert record.monitoring_enabled is True
    assert record.check_attempts == 0
    assert record.last_checked_at is None
    assert [(p["hostname"], d) for _, p, d in scheduler.of(WorkflowUnit.VERIFY)] == [
        ("example.com", timedelta(0)),
        ("www.example.com", timedelta(seconds=30)),
    ]
    assert scheduler.of(WorkflowUnit.MONITOR) == [
        (WorkflowUnit.MONITOR, {"tenant_id": str(record.tenant_id)}, timedelta(seconds=60))
    ]


def test_start_setup_is_idempotent_while_monitoring(setup_service, make_domain, provider, scheduler):
    record = make_domain()
    setup_service.start_setup(record.tenant_id)
    scheduler.clear()

    setup_service.start_setup(record.tenant_id)

    assert provider.added == ["example.com"]
    assert scheduler.enqueued == []


def test_start_setup_treats_existing_provider_domain_as_success(setup_service, make_domain, provider, db):
    provider.seed("example.com", verified=True)
    record = make_domain()

    setup_service.start_setup(record.tenant_id)

    db.refresh(record)
    assert provider.added == []
    assert record.monitoring_status == MonitoringStatus.MONITORING


def test_start_setup_conflict_counts_as_registered(setup_service, make_domain, provider, db):
    def conflicting_add(hostname):
        raise ProviderConflictError(f"Domain already exists: {hostname}", 409)

    provider.add_domain = conflicting_add
    record = make_domain()

    setup_service.start_setup(record.tenant_id)

    db.refresh(record)
    assert record.provider_domain_added is True


def test_start_setup_rejects_ineligible_plan(setup_service, make_domain, provider):
    record = make_domain(plan="standard")
    with pytest.raises(DomainIneligibleError):
        setup_service.start_setup(record.tenant_id)
    assert provider.added == []


def test_start_setup_rejects_platform_subdomain(setup_service, make_domain):
    record = make_domain(host_type=HostType.PLATFORM_SUBDOMAIN)
    with pytest.raises(DomainIneligibleError):
        setup_service.start_setup(record.tenant_id)


def test_start_setup_provider_failure_propagates(setup_service, make_domain, provider, scheduler, db):
    def failing_add(hostname):
        raise ProviderAPIError("Invalid domain name", 400)

    provider.add_domain = failing_add
    record = make_domain()

    with pytest.raises(ProviderAPIError):
        setup_service.start_setup(record.tenant_id)

    db.refresh(record)
    assert record.monitoring_status == MonitoringStatus.INACTIVE
    assert scheduler.enqueued == []


def test_record_setup_failure_is_tenant_visible(setup_service, make_domain, db):
    record = make_domain()
    setup_service.record_setup_failure(record.tenant_id, "x" * 2000)

    db.refresh(record)
    assert len(record.setup_error) == 1000
    assert setup_service.status(record)["tenant_status"] == "setup_failed"


def test_restart_after_timeout_resets_budget(setup_service, make_domain, provider, scheduler, db):
    record = make_domain(
        monitoring_status=MonitoringStatus.FAILED,
        monitoring_enabled=True,
        provider_domain_added=True,
        check_attempts=12,
    )

    setup_service.restart_monitoring(record.tenant_id)

    db.refresh(record)
    assert record.monitoring_status == MonitoringStatus.MONITORING
    assert record.check_attempts == 0
    assert provider.added == []
    assert scheduler.of(WorkflowUnit.MONITOR)[0][2] == timedelta(0)


def test_restart_without_provider_domain_runs_setup(setup_service, make_domain, provider):
    record = make_domain(monitoring_status=MonitoringStatus.FAILED, provider_domain_added=False)
    setup_service.restart_monitoring(record.tenant_id)
    assert provider.added == ["example.com"]


def test_restart_refused_when_active(setup_service, make_domain):
    record = make_domain(monitoring_status=MonitoringStatus.ACTIVE, provider_domain_added=True)
    with pytest.raises(DomainSetupError):
        setup_service.restart_monitoring(record.tenant_id)


def test_restart_refused_while_monitoring(setup_service, monitoring_domain, scheduler):
    with pytest.raises(DomainSetupError):
        setup_service.restart_monitoring(monitoring_domain.tenant_id)
    assert scheduler.enqueued == []
    assert setup_service.can_restart(monitoring_domain) is False


def test_force_activate_and_disable(setup_service, make_domain, probe, notifier, db):
    probe.default = True
    record = make_domain(monitoring_status=MonitoringStatus.FAILED, monitoring_enabled=True)

    setup_service.force_activate(record.tenant_id)
    db.refresh(record)
    assert record.monitoring_status == MonitoringStatus.ACTIVE
    assert record.activated_at is not None
    assert probe.calls == ["example.com"]
    assert notifier.events == ["domain_activated"]

    setup_service.disable(record.tenant_id)
    db.refresh(record)
    assert record.monitoring_status == MonitoringStatus.INACTIVE
    assert record.monitoring_enabled is False
    assert record.hostname == "example.com"


def test_remove_custom_domain_reverts_to_subdomain(setup_service, make_domain, provider, db):
    provider.seed("example.com")
    record = make_domain(monitoring_status=MonitoringStatus.ACTIVE, provider_domain_added=True)

    result = setup_service.remove_custom_domain(record.tenant_id)

    db.refresh(record)
    assert result == {"hostname": "example.com", "removed": ["example.com"], "failed": []}
    assert record.host_type == HostType.PLATFORM_SUBDOMAIN
    assert record.monitoring_status == MonitoringStatus.INACTIVE
    assert provider.domains == {}


def test_remove_custom_domain_absorbs_provider_errors(setup_service, make_domain, provider, db):
    provider.seed("www.example.com")

    def failing_remove(domain_id):
        raise ProviderAPIError("Service unavailable", 503)

    provider.remove_domain = failing_remove
    record = make_domain(provider_domain_added=True)

    result = setup_service.remove_custom_domain(record.tenant_id)

    db.refresh(record)
    assert result["failed"] == ["www.example.com"]
    assert record.host_type == HostType.PLATFORM_SUBDOMAIN


def test_status_payload(setup_service, make_domain):
    record = make_domain(
        monitoring_status=MonitoringStatus.MONITORING,
        monitoring_enabled=True,
        check_attempts=3,
        canonical_preference=CanonicalPreference.WWW,
    )
    payload = setup_service.status(record)

    assert payload["tenant_status"] == "verifying"
    assert payload["canonical_hostname"] == "www.example.com"
    assert payload["attempts"] == 3
    assert payload["max_attempts"] == 12
    assert payload["time_remaining"] == "~45 minutes"
    assert payload["can_restart"] is False
    assert payload["dns"] is None


def test_missing_record_raises(setup_service):
    import uuid

    with pytest.raises(DomainSetupError):
        setup_service.start_setup(uuid.uuid4())


def test_force_activate_refused_while_not_serving(setup_service, monitoring_domain, probe, notifier, db):
    probe.default = False

    with pytest.raises(DomainNotServingError):
        setup_service.force_activate(monitoring_domain.tenant_id)

    db.refresh(monitoring_domain)
    assert monitoring_domain.monitoring_status == MonitoringStatus.MONITORING
    assert monitoring_domain.activated_at is None
    assert notifier.sent == []


def test_force_activate_refused_for_platform_subdomain_on_free_plan(setup_service, make_domain, probe, db):
    probe.default = True
    record = make_domain(host_type=HostType.PLATFORM_SUBDOMAIN, plan="free")

    with pytest.raises(DomainIneligibleError):
        setup_service.force_activate(record.tenant_id)

    db.refresh(record)
    assert record.monitoring_status == MonitoringStatus.INACTIVE
    assert probe.calls == []


def test_force_activate_checks_canonical_hostname(setup_service, make_domain, probe):
    probe.default = True
    record = make_domain(canonical_preference=CanonicalPreference.WWW)

    setup_service.force_activate(record.tenant_id)

    assert probe.calls == ["www.example.com"]


def test_release_hostname_removes_both_old_variants(setup_service, make_domain, provider, db):
    provider.seed("old-shop.com", verified=True)
    provider.seed("www.old-shop.com")
    record = make_domain(
        hostname="old-shop.com",
        monitoring_status=MonitoringStatus.ACTIVE,
        provider_domain_added=True,
    )

    result = setup_service.release_hostname(record, "new-shop.com")

    db.refresh(record)
    assert result == {"hostname": "old-shop.com", "removed": ["old-shop.com", "www.old-shop.com"], "failed": []}
    assert provider.domains == {}
    assert record.provider_domain_added is False


def test_release_hostname_is_a_no_op_for_same_hostname(setup_service, make_domain, provider):
    provider.seed("example.com")
    record = make_domain(provider_domain_added=True)

    result = setup_service.release_hostname(record, "example.com")

    assert result["removed"] == []
    assert provider.removed == []


def test_status_reports_dns_targets_on_request(setup_service, make_domain, dns):
    dns.records[("example.com", "A")] = ["93.184.216.34"]
    dns.records[("www.example.com", "CNAME")] = ["storefronts.onrender.com"]
    record = make_domain(monitoring_status=MonitoringStatus.MONITORING, monitoring_enabled=True)

    payload = setup_service.status(record, include_dns=True)

    assert payload["dns"]["overall_status"] == "incomplete"
    assert payload["dns"]["apex"]["points_to_platform"] is False
    assert payload["dns"]["www"]["points_to_platform"] is True
    assert payload["dns"]["next_steps"] == ["Add A record: @ → 216.24.57.1"]
