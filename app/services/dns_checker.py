"""
DNS Target Check

Tells "the DNS points somewhere else" apart from "the certificate is still pending".
A hostname points at the platform when either
  - its CNAME target is DNS_CNAME_TARGET, or
  - its A records include DNS_APEX_IP (apex domains cannot carry a CNAME).

check_both reports apex and www separately, with the record the tenant still has
to add. Lookups never raise: a failed lookup is reported as not pointing.
"""
import logging
from dataclasses import asdict, dataclass, field
from typing import Callable, List, Optional

import dns.resolver

from app.config import settings
from app.services.domain_names import apex_of, normalize_hostname, www_of

logger = logging.getLogger("storefront.dns")

Lookup = Callable[[str, str, float], List[str]]


def lookup_records(hostname: str, rdtype: str, timeout: float) -> List[str]:
    """Record values for one name; an empty list when the name has none of that type."""
    resolver = dns.resolver.Resolver()
    resolver.lifetime = timeout
    try:
        answers = resolver.resolve(hostname, rdtype)
    except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
        return []
    if rdtype == "CNAME":
        return [rdata.target.to_text().rstrip(".").lower() for rdata in answers]
    return [rdata.to_text() for rdata in answers]


@dataclass
class DnsTargetResult:
    hostname: str
    expected_record: str            # record the tenant should add: A or CNAME
    expected_target: str
    points_to_platform: bool = False
    matched_record: Optional[str] = None
    found: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def next_step(self) -> Optional[str]:
        if self.points_to_platform:
            return None
        label = "@" if self.expected_record == "A" else "www"
        return f"Add {self.expected_record} record: {label} → {self.expected_target}"


@dataclass
class DnsReport:
    domain: str
    apex: DnsTargetResult
    www: DnsTargetResult

    @property
    def verified(self) -> bool:
        return self.apex.points_to_platform and self.www.points_to_platform

    @property
    def message(self) -> str:
        if self.verified:
            return "Both apex domain and www subdomain point to the storefront"
        if self.apex.points_to_platform:
            return "Apex domain is configured, www subdomain (CNAME) needs configuration"
        if self.www.points_to_platform:
            return "www subdomain is configured, apex domain (A record) needs configuration"
        return "Both A record and CNAME record need configuration"

    @property
    def next_steps(self) -> List[str]:
        return [step for step in (self.apex.next_step, self.www.next_step) if step]

    def as_dict(self) -> dict:
        return {
            "overall_status": "verified" if self.verified else "incomplete",
            "message": self.message,
            "apex": asdict(self.apex),
            "www": asdict(self.www),
            "next_steps": self.next_steps,
        }


class DnsTargetChecker:
    def __init__(
        self,
        cname_target: Optional[str] = None,
        apex_ip: Optional[str] = None,
        timeout: Optional[float] = None,
        lookup: Optional[Lookup] = None,
    ):
        self.cname_target = (cname_target or settings.DNS_CNAME_TARGET).rstrip(".").lower()
        self.apex_ip = apex_ip or settings.DNS_APEX_IP
        self.timeout = timeout if timeout is not None else settings.DNS_CHECK_TIMEOUT_SECONDS
        self._lookup = lookup or lookup_records

    def check_target(self, hostname: str, expected_record: str = "CNAME") -> DnsTargetResult:
        host = normalize_hostname(hostname)
        result = DnsTargetResult(
            hostname=host,
            expected_record=expected_record,
            expected_target=self.apex_ip if expected_record == "A" else self.cname_target,
        )
        try:
            cnames = self._lookup(host, "CNAME", self.timeout)
            if cnames:
                result.found = list(cnames)
                if cnames[0].rstrip(".").lower() == self.cname_target:
                    result.points_to_platform = True
                    result.matched_record = "CNAME"
                else:
                    result.error = f"CNAME points to {cnames[0]}, expected {self.cname_target}"
                return result

            addresses = self._lookup(host, "A", self.timeout)
            result.found = list(addresses)
            if self.apex_ip in addresses:
                result.points_to_platform = True
                result.matched_record = "A"
            elif addresses:
                result.error = f"A record points to {', '.join(addresses)}, expected {self.apex_ip}"
            else:
                result.error = "No CNAME or A record found"
        except Exception as e:
            result.error = f"DNS lookup failed: {e}"
            logger.warning("DNS target lookup failed for %s: %s", host, e)
        return result

    def check_both(self, hostname: str) -> DnsReport:
        host = normalize_hostname(hostname)
        report = DnsReport(
            domain=host,
            apex=self.check_target(apex_of(host), expected_record="A"),
            www=self.check_target(www_of(host), expected_record="CNAME"),
        )
        if report.verified:
            logger.info("DNS for %s points to the platform (apex and www)", host)
        else:
            logger.warning("DNS for %s incomplete: %s", host, "; ".join(report.next_steps))
        return report
