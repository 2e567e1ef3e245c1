"""
Security package: key/certificate bundles, signing, rotation and request authentication.
"""
from .bundle import Bundle, decode_bundle, encode_cert, encode_key
from .models import CertificateInfo
from .rotation import needs_rotation
from .signing import AltNames, SigningConfig, create_ca, sign

__all__ = [
    'Bundle',
    'decode_bundle',
    'encode_cert',
    'encode_key',
    'CertificateInfo',
    'needs_rotation',
    'AltNames',
    'SigningConfig',
    'create_ca',
    'sign'
]
