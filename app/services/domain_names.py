"""Hostname helpers shared by setup, monitoring and rebuild."""
import logging
from typing import List, Optional

from app.models.tenant_domain import CanonicalPreference

logger = logging.getLogger("storefront.domain.names")


def normalize_hostname(value: Optional[str]) -> str:
    """Lower-case a user supplied hostname and strip scheme, path, port and trailing dot."""
    host = (value or "").strip().lower()
    if "://" in host:
        host = host.split("://", 1)[1]
    host = host.split("/", 1)[0]
    host = host.split("?", 1)[0]
    host = host.split(":", 1)[0]
    return host.rstrip(".")


def apex_of(hostname: str) -> str:
    host = normalize_hostname(hostname)
    if host.startswith("www."):
        return host[len("www."):]
    return host


def www_of(hostname: str) -> str:
    return f"www.{apex_of(hostname)}"


def both_variants(hostname: str) -> List[str]:
    """Apex first, then www."""
    return [apex_of(hostname), www_of(hostname)]


def canonical_hostname(hostname: str, preference: Optional[str]) -> str:
    """The variant that serves the storefront; the other redirects to it."""
    if preference == CanonicalPreference.WWW:
        return www_of(hostname)
    if preference == CanonicalPreference.APEX:
        return apex_of(hostname)
    logger.warning("Unknown canonical preference %r, using stored hostname %s", preference, hostname)
    return hostname


def hostnames_to_register(hostname: str, preference: Optional[str]) -> List[str]:
    """
    Hostnames added as primary records at the provider.

    Only the canonical variant is added; the provider creates the redirect for
    the other one. An unrecognised preference registers the stored hostname
    unchanged.
    """
    return [canonical_hostname(hostname, preference)]
