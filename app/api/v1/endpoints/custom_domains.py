"""
Custom Domain Management API (internal)

Called by the host platform on behalf of a tenant:
  1. Switch the storefront to a custom hostname (kicks off setup)
  2. Read the coarse tenant-facing status
  3. Restart monitoring after a timeout
  4. Admin: force-activate / disable
  5. Revert to the platform subdomain
"""
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from app.api import deps
from app.config import settings
from app.crud import crud_tenant_domain
from app.models.tenant_domain import HostType, MonitoringStatus
from app.schemas.tenant_domain import DomainConfigure, DomainRemoval, DomainStatus
from app.services.domain_setup import (
    DomainIneligibleError,
    DomainNotConfiguredError,
    DomainSetupError,
    DomainSetupService,
)
from app.services.domain_state import TENANT_STATUS_LABELS
from app.services.scheduler import WorkflowUnit
from app.services.subscription import get_plan_feature, get_upgrade_suggestion

router = APIRouter()
logger = logging.getLogger("storefront.api.custom_domain")


# ── Helpers ──

def _service(
    db: Session = Depends(deps.get_db),
    scheduler=Depends(deps.get_scheduler),
    provider_factory=Depends(deps.get_provider_factory),
    probe_factory=Depends(deps.get_probe_factory),
    dns_checker_factory=Depends(deps.get_dns_checker_factory),
) -> DomainSetupService:
    return DomainSetupService(
        db,
        scheduler=scheduler,
        provider_factory=provider_factory,
        probe_factory=probe_factory,
        dns_checker_factory=dns_checker_factory,
    )


def _get_tenant_or_404(db: Session, tenant_id: UUID):
    tenant = crud_tenant_domain.get_tenant(db, tenant_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant


def _not_configured(tenant_id: UUID) -> DomainStatus:
    return DomainStatus(
        tenant_id=str(tenant_id),
        host_type=HostType.PLATFORM_SUBDOMAIN,
        monitoring_status=MonitoringStatus.INACTIVE,
        monitoring_enabled=False,
        tenant_status="not_configured",
        tenant_status_label=TENANT_STATUS_LABELS["not_configured"],
        attempts=0,
        max_attempts=settings.DOMAIN_MAX_CHECK_ATTEMPTS,
        time_remaining=None,
        can_restart=False,
    )


# ── Endpoints ──

@router.get("/{tenant_id}/domain", response_model=DomainStatus)
def get_domain_status(
    tenant_id: UUID,
    check_dns: bool = False,
    db: Session = Depends(deps.get_db),
    service: DomainSetupService = Depends(_service),
) -> Any:
    """目前的自訂域名狀態（給租戶看的粗略狀態）；check_dns=true 時附上 apex / www DNS 檢查"""
    _get_tenant_or_404(db, tenant_id)
    record = crud_tenant_domain.get(db, tenant_id)
    if record is None:
        return _not_configured(tenant_id)
    return service.status(record, include_dns=check_dns)


@router.put("/{tenant_id}/domain", response_model=DomainStatus, status_code=status.HTTP_202_ACCEPTED)
def configure_domain(
    tenant_id: UUID,
    body: DomainConfigure,
    response: Response,
    db: Session = Depends(deps.get_db),
    service: DomainSetupService = Depends(_service),
) -> Any:
    """切換至自訂域名（僅 Premium 方案），背景執行設定流程"""
    tenant = _get_tenant_or_404(db, tenant_id)

    taken = crud_tenant_domain.get_by_hostname(db, body.hostname)
    if taken is not None and taken.tenant_id != tenant_id and taken.host_type == HostType.CUSTOM_DOMAIN:
        raise HTTPException(status_code=409, detail="Hostname is already used by another storefront")

    current = crud_tenant_domain.get(db, tenant_id)
    if (
        current is not None
        and current.is_custom_domain
        and current.hostname == body.hostname
        and current.canonical_preference == body.canonical_preference
        and current.monitoring_status in (MonitoringStatus.MONITORING, MonitoringStatus.ACTIVE)
    ):
        logger.info("Domain %s unchanged for tenant %s, setup already under way", body.hostname, tenant_id)
        return service.status(current)

    if tenant.status != "active" or not get_plan_feature(tenant.plan, "custom_domain"):
        raise HTTPException(
            status_code=403,
            detail=get_upgrade_suggestion(tenant.plan, "custom_domain") or "Tenant is not active",
        )

    if current is not None:
        released = service.release_hostname(current, body.hostname)
        if released["failed"]:
            response.headers["X-Provider-Cleanup"] = "partial"

    record = crud_tenant_domain.switch_to_custom_domain(
        db,
        tenant=tenant,
        hostname=body.hostname,
        canonical_preference=body.canonical_preference,
    )

    service.scheduler.enqueue(WorkflowUnit.SETUP, {"tenant_id": str(tenant_id)})
    logger.info("Custom domain %s configured for tenant %s, setup enqueued", record.hostname, tenant_id)
    return service.status(record)


@router.post("/{tenant_id}/domain/restart", response_model=DomainStatus)
def restart_domain_monitoring(
    tenant_id: UUID,
    db: Session = Depends(deps.get_db),
    service: DomainSetupService = Depends(_service),
) -> Any:
    """重新啟動域名監控（逾時失敗後手動重試）"""
    _get_tenant_or_404(db, tenant_id)
    try:
        record = service.restart_monitoring(tenant_id)
    except DomainNotConfiguredError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DomainIneligibleError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except DomainSetupError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return service.status(record)


@router.post("/{tenant_id}/domain/activate", response_model=DomainStatus)
def force_activate_domain(
    tenant_id: UUID,
    db: Session = Depends(deps.get_db),
    service: DomainSetupService = Depends(_service),
) -> Any:
    """管理員強制啟用（略過剩餘檢查次數，但須即時通過健康檢查）"""
    _get_tenant_or_404(db, tenant_id)
    try:
        record = service.force_activate(tenant_id)
    except DomainNotConfiguredError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DomainIneligibleError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except DomainSetupError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return service.status(record)


@router.post("/{tenant_id}/domain/disable", response_model=DomainStatus)
def disable_domain(
    tenant_id: UUID,
    db: Session = Depends(deps.get_db),
    service: DomainSetupService = Depends(_service),
) -> Any:
    """停止監控，保留域名設定"""
    _get_tenant_or_404(db, tenant_id)
    try:
        record = service.disable(tenant_id)
    except DomainSetupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return service.status(record)


@router.delete("/{tenant_id}/domain", response_model=DomainRemoval)
def remove_domain(
    tenant_id: UUID,
    response: Response,
    db: Session = Depends(deps.get_db),
    service: DomainSetupService = Depends(_service),
) -> Any:
    """移除自訂域名並回到平台子網域"""
    _get_tenant_or_404(db, tenant_id)
    try:
        result = service.remove_custom_domain(tenant_id)
    except DomainSetupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if result["failed"]:
        response.headers["X-Provider-Cleanup"] = "partial"
    logger.info("Custom domain removed for tenant %s: %s", tenant_id, result["hostname"])
    return result
