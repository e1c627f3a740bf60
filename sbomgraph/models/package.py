import base64
import binascii
import re
from datetime import datetime
from datetime import timezone
from enum import Enum

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import model_validator

from sbomgraph.models.identifier import Identifier


class Severity(str, Enum):
    ERROR = 'ERROR'
    WARNING = 'WARNING'
    HINT = 'HINT'

    def __str__(self) -> str:
        return self.value


class Issue(BaseModel):
    """A non-fatal problem recorded while resolving a package."""
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    source: str
    message: str
    severity: Severity = Severity.ERROR


class HashAlgorithm(str, Enum):
    NONE = ''
    MD5 = 'MD5'
    SHA1 = 'SHA-1'
    SHA256 = 'SHA-256'
    SHA384 = 'SHA-384'
    SHA512 = 'SHA-512'

    @property
    def spdx_name(self) -> str:
        return self.value.replace('-', '')


_SRI_ALGORITHMS = {
    'sha1': HashAlgorithm.SHA1,
    'sha256': HashAlgorithm.SHA256,
    'sha384': HashAlgorithm.SHA384,
    'sha512': HashAlgorithm.SHA512,
}

_HEX_LENGTHS = {
    32: HashAlgorithm.MD5,
    40: HashAlgorithm.SHA1,
    64: HashAlgorithm.SHA256,
    96: HashAlgorithm.SHA384,
    128: HashAlgorithm.SHA512,
}

_HEX_PATTERN = re.compile(r'^[0-9a-fA-F]+$')


class Hash(BaseModel):
    value: str = ''
    algorithm: HashAlgorithm = HashAlgorithm.NONE

    model_config = ConfigDict(frozen=True)

    @classmethod
    def create(cls, value: str) -> 'Hash':
        """
        Create a hash from an SRI integrity string ("sha512-<base64>") or a
        bare hex digest. Unrecognized input raises ValueError, empty input
        yields the empty hash.
        """
        value = value.strip()
        if not value:
            return cls()

        # Several SRI values may be given, the first one is used.
        first = value.split()[0]
        prefix, sep, encoded = first.partition('-')
        if sep and prefix.lower() in _SRI_ALGORITHMS:
            try:
                digest = base64.b64decode(encoded, validate=True)
            except binascii.Error as e:
                raise ValueError(f"Invalid SRI hash {first!r}: {e}")
            return cls(value=digest.hex(), algorithm=_SRI_ALGORITHMS[prefix.lower()])

        algorithm = _HEX_LENGTHS.get(len(first))
        if algorithm and _HEX_PATTERN.match(first):
            return cls(value=first.lower(), algorithm=algorithm)

        raise ValueError(f"Unknown hash format: {first!r}")

    def is_empty(self) -> bool:
        return not self.value


class RemoteArtifact(BaseModel):
    url: str = ''
    hash: Hash = Field(default_factory=Hash)

    model_config = ConfigDict(frozen=True)


class VcsInfo(BaseModel):
    type: str = ''
    url: str = ''
    revision: str = ''
    path: str = ''

    model_config = ConfigDict(frozen=True)

    def is_empty(self) -> bool:
        return self == VcsInfo()

    def merge(self, other: 'VcsInfo') -> 'VcsInfo':
        """Return a copy where empty fields are filled in from `other`."""
        return VcsInfo(
            type=self.type or other.type,
            url=self.url or other.url,
            revision=self.revision or other.revision,
            path=self.path or other.path,
        )


class PackageLinkage(str, Enum):
    DYNAMIC = 'DYNAMIC'
    PROJECT_DYNAMIC = 'PROJECT_DYNAMIC'

    @property
    def is_project(self) -> bool:
        return self is PackageLinkage.PROJECT_DYNAMIC


class ProcessedDeclaredLicense(BaseModel):
    spdx_expression: str | None = None
    mapped: dict[str, str] = Field(default_factory=dict)
    unmapped: set[str] = Field(default_factory=set)


class Package(BaseModel):
    """A resolved external package. Name and version must not be empty."""
    id: Identifier
    purl: str = ''
    authors: set[str] = Field(default_factory=set)
    declared_licenses: set[str] = Field(default_factory=set)
    declared_licenses_processed: ProcessedDeclaredLicense = Field(
        default_factory=ProcessedDeclaredLicense,
    )
    concluded_license: str | None = None
    description: str = ''
    homepage_url: str = ''
    binary_artifact: RemoteArtifact = Field(default_factory=RemoteArtifact)
    source_artifact: RemoteArtifact = Field(default_factory=RemoteArtifact)
    vcs: VcsInfo = Field(default_factory=VcsInfo)
    vcs_processed: VcsInfo = Field(default_factory=VcsInfo)

    @model_validator(mode='after')
    def check_name_and_version(self) -> 'Package':
        coordinates = self.id.to_coordinates()
        if not self.id.name:
            raise ValueError(
                f"Generated package info for '{coordinates}' has no name.",
            )
        if not self.id.version:
            raise ValueError(
                f"Generated package info for '{coordinates}' has no version.",
            )
        if not self.purl:
            self.purl = self.id.to_purl()
        return self


class Project(BaseModel):
    """A first-party workspace project."""
    id: Identifier
    definition_file_path: str = ''
    authors: set[str] = Field(default_factory=set)
    declared_licenses: set[str] = Field(default_factory=set)
    declared_licenses_processed: ProcessedDeclaredLicense = Field(
        default_factory=ProcessedDeclaredLicense,
    )
    description: str = ''
    homepage_url: str = ''
    vcs: VcsInfo = Field(default_factory=VcsInfo)
    vcs_processed: VcsInfo = Field(default_factory=VcsInfo)
    scope_names: set[str] = Field(default_factory=set)

    @model_validator(mode='after')
    def check_name(self) -> 'Project':
        if not self.id.name:
            raise ValueError(
                f"Project defined in '{self.definition_file_path}' has no name.",
            )
        return self

    def to_package(self) -> Package:
        """
        Package view of this project for SBOM output. Validation is skipped
        because project versions may legitimately be empty.
        """
        return Package.model_construct(
            id=self.id,
            purl='',
            authors=set(self.authors),
            declared_licenses=set(self.declared_licenses),
            declared_licenses_processed=self.declared_licenses_processed,
            concluded_license=None,
            description=self.description,
            homepage_url=self.homepage_url,
            binary_artifact=RemoteArtifact(),
            source_artifact=RemoteArtifact(),
            vcs=self.vcs,
            vcs_processed=self.vcs_processed,
        )
