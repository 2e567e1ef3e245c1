"""
Decides whether a stored leaf certificate has to be replaced.
"""
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from cryptography import x509

from .security_service import dns_names, ip_addresses, is_signed_by
from .signing import SigningConfig, utc_now

# rotate leaf certificates that expire within this window
DEFAULT_EXPIRY_WINDOW = timedelta(days=90)


def slice_diff(old: Sequence, new: Sequence) -> List[str]:
    """
    Describe the difference between two sequences.

    Items only present in ``new`` are reported as ``+item`` (in ``new``
    order), followed by items only present in ``old`` as ``-item``.
    """
    old_values = [str(item) for item in old]
    new_values = [str(item) for item in new]
    added = [f"+{item}" for item in new_values if item not in old_values]
    removed = [f"-{item}" for item in old_values if item not in new_values]
    return added + removed


def _describe_change(old: Sequence, new: Sequence) -> str:
    diff = slice_diff(old, new)
    return " ".join(diff) if diff else "reordered"


def needs_rotation(existing: x509.Certificate, candidate: SigningConfig, issuing_ca: x509.Certificate,
                   expiry_window: timedelta = DEFAULT_EXPIRY_WINDOW,
                   now: Optional[datetime] = None) -> Tuple[str, bool]:
    """
    Check a stored certificate against the desired one.

    The checks run in order and the first match wins. SAN lists are
    compared as ordered sequences, so a reordering alone counts as a change.

    Args:
        existing: Certificate currently held in the store
        candidate: Description of the certificate that should be there
        issuing_ca: Current certificate of the issuing authority
        expiry_window: Rotate when the certificate expires within this window
        now: Reference time, defaults to the current time

    Returns:
        Tuple of (reason, rotate); reason is empty when no rotation is needed
    """
    existing_dns = dns_names(existing)
    if existing_dns != list(candidate.alt_names.dns_names):
        return f"DNS names changed: {_describe_change(existing_dns, candidate.alt_names.dns_names)}", True

    existing_ips = ip_addresses(existing)
    if existing_ips != list(candidate.alt_names.ips):
        return f"IP addresses changed: {_describe_change(existing_ips, candidate.alt_names.ips)}", True

    now = now or utc_now()
    not_after = existing.not_valid_after_utc
    if now + expiry_window > not_after:
        return f"Certificate expires at {not_after.isoformat()}", True

    if not is_signed_by(existing, issuing_ca):
        return "Certificate not signed by current CA", True

    return "", False
