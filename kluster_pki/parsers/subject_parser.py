"""
Encoding of end-user identity into certificate subject fields.

A user certificate carries everything a client needs to refresh it without
any other configuration:

    CN  username, or username@domain when the user has a domain
    O   group names, followed by OpenStack role names prefixed with "os:"
    ST  [auth URL, project id], or [project id] without an auth URL
    L   [URL of the service that issued the certificate]

Clients must not rely on the order of ST entries when decoding: the auth URL
is the first entry that looks like a URL, the project id the first that does
not. Any change to this layout is a breaking change and needs a new version.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from cryptography import x509
from cryptography.x509.oid import NameOID

from ..security.signing import build_name

ROLE_PREFIX = "os:"
SUBJECT_VERSION = 1


def _looks_like_url(value: str) -> bool:
    return value.startswith("http")


@dataclass
class UserSubject:
    """Version 1 of the user certificate subject layout."""
    username: str
    domain: str = ""
    groups: List[str] = field(default_factory=list)
    roles: List[str] = field(default_factory=list)
    auth_url: str = ""
    project_id: str = ""
    api_url: str = ""

    version = SUBJECT_VERSION

    @property
    def common_name(self) -> str:
        if self.domain:
            return f"{self.username}@{self.domain}"
        return self.username

    @property
    def organization(self) -> List[str]:
        return list(self.groups) + [f"{ROLE_PREFIX}{role}" for role in self.roles]

    @property
    def province(self) -> List[str]:
        if self.auth_url:
            return [self.auth_url, self.project_id]
        return [self.project_id]

    @property
    def locality(self) -> List[str]:
        return [self.api_url]

    def encode(self) -> x509.Name:
        """Build the certificate subject for this identity."""
        return build_name(
            self.common_name,
            organization=self.organization,
            province=self.province,
            locality=self.locality,
        )

    @classmethod
    def decode(cls, name: x509.Name) -> 'UserSubject':
        """
        Recover the identity from a certificate subject.

        Raises:
            ValueError: If the subject carries no common name
        """
        common_names = _values(name, NameOID.COMMON_NAME)
        if not common_names or not common_names[0]:
            raise ValueError("Client certificate didn't contain username")
        username, _, domain = common_names[0].partition("@")

        groups, roles = [], []
        for organization in _values(name, NameOID.ORGANIZATION_NAME):
            if organization.startswith(ROLE_PREFIX):
                roles.append(organization[len(ROLE_PREFIX):])
            else:
                groups.append(organization)

        provinces = _values(name, NameOID.STATE_OR_PROVINCE_NAME)
        localities = _values(name, NameOID.LOCALITY_NAME)

        return cls(
            username=username,
            domain=domain,
            groups=groups,
            roles=roles,
            auth_url=_first(provinces, _looks_like_url) or "",
            project_id=_first(provinces, lambda value: not _looks_like_url(value)) or "",
            api_url=localities[0] if localities else "",
        )

    @classmethod
    def from_certificate(cls, certificate: x509.Certificate) -> 'UserSubject':
        return cls.decode(certificate.subject)


def _values(name: x509.Name, oid) -> List[str]:
    return [attribute.value for attribute in name.get_attributes_for_oid(oid)]


def _first(values: List[str], predicate) -> Optional[str]:
    for value in values:
        if predicate(value):
            return value
    return None
