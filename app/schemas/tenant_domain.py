from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, field_validator

from app.services.domain_names import normalize_hostname


# Properties to receive via API when switching to a custom hostname
class DomainConfigure(BaseModel):
    hostname: str
    canonical_preference: str = "apex"  # apex, www

    @field_validator("hostname")
    @classmethod
    def validate_hostname(cls, v: str) -> str:
        host = normalize_hostname(v)
        if not host or "." not in host or " " in host:
            raise ValueError("Invalid hostname")
        return host


# Where apex / www currently point (GET .../domain?check_dns=true)
class DnsTargetStatus(BaseModel):
    hostname: str
    expected_record: str  # A, CNAME
    expected_target: str
    points_to_platform: bool
    matched_record: Optional[str] = None
    found: List[str] = []
    error: Optional[str] = None


class DnsStatus(BaseModel):
    overall_status: str  # verified, incomplete
    message: str
    apex: DnsTargetStatus
    www: DnsTargetStatus
    next_steps: List[str] = []


# Coarse status returned to the host platform
class DomainStatus(BaseModel):
    tenant_id: str
    hostname: Optional[str] = None
    canonical_hostname: Optional[str] = None
    canonical_preference: Optional[str] = None
    host_type: str
    monitoring_status: str
    monitoring_enabled: bool
    tenant_status: str  # not_configured, pending, setup_failed, verifying, live, needs_attention
    tenant_status_label: str
    attempts: int
    max_attempts: int
    time_remaining: Optional[str] = None
    last_checked_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    can_restart: bool
    dns: Optional[DnsStatus] = None


class DomainRemoval(BaseModel):
    hostname: Optional[str] = None
    removed: List[str] = []
    failed: List[str] = []
