"""
Security models for certificate inspection.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List


@dataclass
class CertificateInfo:
    """Information about a certificate."""
    subject: str
    issuer: str
    serial_number: str
    not_before: datetime
    not_after: datetime
    is_valid: bool
    is_ca: bool
    fingerprint: str
    dns_names: List[str]
    ip_addresses: List[str]

    def to_dict(self) -> dict:
        return {
            'subject': self.subject,
            'issuer': self.issuer,
            'serial_number': self.serial_number,
            'not_before': self.not_before.isoformat(),
            'not_after': self.not_after.isoformat(),
            'is_valid': self.is_valid,
            'is_ca': self.is_ca,
            'fingerprint': self.fingerprint,
            'dns_names': self.dns_names,
            'ip_addresses': self.ip_addresses,
        }
