"""
Parsers for annotation values and user certificate subjects.
"""

from .san_parser import IPOrDNSName, SANType, parse_san_annotation, parse_san_entries
from .subject_parser import UserSubject

__all__ = [
    'IPOrDNSName',
    'SANType',
    'parse_san_annotation',
    'parse_san_entries',
    'UserSubject'
]
