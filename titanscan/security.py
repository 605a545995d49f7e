"""
Security Utilities Module for titanscan

Provides centralized security functions for:
- Target validation (URL format, private network blocking)
- Command injection prevention
- SSRF protection on DNS resolution
- Output sanitization before storage or display
"""

import html
import ipaddress
import logging
import re
import uuid as uuid_module
from typing import Union
from urllib.parse import urlparse

import dns.asyncresolver
import dns.exception

from .errors import TargetResolutionError, TargetValidationError

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

# "&" and parentheses are legal in query strings; commands never pass through a shell
DANGEROUS_CHARS = [";", "|", "`", "$", "<", ">", "\n", "\r", "\\", "'", '"', " "]
LOCAL_HOSTNAMES = {"localhost", "ip6-localhost", "ip6-loopback", "0.0.0.0"}
HOSTNAME_PATTERN = re.compile(
    r"^(?=.{1,253}$)([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$",
    re.IGNORECASE,
)


# ============================================================================
# INPUT VALIDATION
# ============================================================================

def validate_uuid(value: str, field_name: str = "ID") -> str:
    """
    Validate UUID format to prevent injection attempts.

    Raises:
        ValueError: If the value is not a valid UUID
    """
    try:
        uuid_module.UUID(value)
        return value
    except (ValueError, AttributeError, TypeError):
        raise ValueError(f"Invalid {field_name} format. Must be a valid UUID.")


def is_public_ip(ip: IPAddress) -> bool:
    """Returns True if IP is public, False if private/reserved/loopback."""
    return not (
        ip.is_private or
        ip.is_loopback or
        ip.is_reserved or
        ip.is_link_local or
        ip.is_multicast or
        ip.is_unspecified
    )


def _parse_ip(hostname: str):
    try:
        return ipaddress.ip_address(hostname)
    except ValueError:
        return None


def validate_target(target) -> str:
    """
    Validate a scan target before any job or tool runs.

    Security Features:
    - Requires an absolute http(s) URL with a real hostname
    - Blocks shell metacharacters
    - Blocks localhost and private/reserved IP literals

    Args:
        target: Raw target supplied by the client

    Returns:
        The stripped target URL

    Raises:
        TargetValidationError: If the target is missing, malformed or local
    """
    if not target or not isinstance(target, str):
        raise TargetValidationError("Target URL is required")

    target = target.strip()
    if not target:
        raise TargetValidationError("Target URL is required")

    for char in DANGEROUS_CHARS:
        if char in target:
            logger.warning("Rejected target with shell metacharacter %r", char)
            raise TargetValidationError(
                f"Invalid character {char!r} in target. "
                "Potential command injection attempt blocked."
            )

    invalid_format = TargetValidationError(
        "Invalid URL format. URL must start with http:// or https://"
    )
    try:
        parsed = urlparse(target)
        # Accessing .port validates it
        parsed.port
    except ValueError:
        raise invalid_format

    hostname = parsed.hostname
    if parsed.scheme not in ("http", "https") or not hostname:
        raise invalid_format

    ip = _parse_ip(hostname)
    if hostname.lower() in LOCAL_HOSTNAMES or (ip is not None and not is_public_ip(ip)):
        logger.warning("Rejected local/private target %s", hostname)
        raise TargetValidationError("Scanning local or private networks is not allowed")

    if ip is None and not HOSTNAME_PATTERN.match(hostname):
        raise invalid_format

    if hostname.lower().endswith((".local", ".internal", ".localhost")):
        raise TargetValidationError("Scanning local or private networks is not allowed")

    return target


def extract_domain(target: str) -> str:
    """Return the hostname part of a validated target URL."""
    hostname = urlparse(target).hostname
    if not hostname:
        raise TargetValidationError(f"Cannot extract hostname from {target!r}")
    return hostname


# ============================================================================
# DNS RESOLUTION (SSRF protection)
# ============================================================================

async def resolve_target(target: str) -> str:
    """
    Resolve a target URL to its first IPv4 address.

    Raises:
        TargetResolutionError: If resolution fails or yields a non-public address
    """
    hostname = extract_domain(target)
    ip = _parse_ip(hostname)
    if ip is None:
        resolver = dns.asyncresolver.Resolver()
        resolver.timeout = 5
        resolver.lifetime = 5
        try:
            answer = await resolver.resolve(hostname, "A")
        except dns.exception.DNSException as e:
            raise TargetResolutionError(
                f"Could not resolve {hostname}: {type(e).__name__}"
            )
        addresses = [record.to_text() for record in answer]
        if not addresses:
            raise TargetResolutionError(f"Could not resolve {hostname}: no A records")
        ip = ipaddress.ip_address(addresses[0])

    if not is_public_ip(ip):
        raise TargetResolutionError(
            f"{hostname} resolves to a non-public address ({ip}). "
            "SSRF protection: Cannot scan internal network resources."
        )
    return str(ip)


# ============================================================================
# OUTPUT SANITIZATION
# ============================================================================

def sanitize_output(text: str) -> str:
    """Neutralize markup/script content in tool output before storage or display."""
    return html.escape(text or "", quote=False)
