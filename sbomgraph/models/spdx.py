"""Pydantic models of the SPDX 2.2 JSON document."""
from datetime import datetime
from enum import Enum

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_serializer

NOASSERTION = 'NOASSERTION'
NONE = 'NONE'
REF_PREFIX = 'SPDXRef-'
LICENSE_REF_PREFIX = 'LicenseRef-'
DOCUMENT_REF_PREFIX = 'DocumentRef-'
PERSON = 'Person:'
ORGANIZATION = 'Organization:'
TOOL = 'Tool:'

SPDX_VERSION = 'SPDX-2.2'
SPDX_LICENSE_LIST_VERSION = '3.24'
DATA_LICENSE = 'CC0-1.0'


class SpdxPackageType(str, Enum):
    """How the origin of a package is represented, one per package."""
    PROJECT = 'project'
    VCS_PACKAGE = 'vcs-package'
    SOURCE_PACKAGE = 'source-package'
    BINARY_PACKAGE = 'binary-package'

    @property
    def infix(self) -> str:
        return 'Project' if self is SpdxPackageType.PROJECT else 'Package'

    @property
    def suffix(self) -> str:
        if self is SpdxPackageType.VCS_PACKAGE:
            return '-vcs'
        if self is SpdxPackageType.SOURCE_PACKAGE:
            return '-source-artifact'
        return ''


class _SpdxModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SpdxChecksum(_SpdxModel):
    algorithm: str
    checksum_value: str = Field(alias='checksumValue')


class SpdxExternalReference(_SpdxModel):
    reference_category: str = Field(alias='referenceCategory')
    reference_type: str = Field(alias='referenceType')
    reference_locator: str = Field(alias='referenceLocator')


class SpdxFile(_SpdxModel):
    spdx_id: str = Field(alias='SPDXID')
    file_name: str = Field(alias='fileName')
    checksums: list[SpdxChecksum] = Field(default_factory=list)
    license_concluded: str = Field(alias='licenseConcluded', default=NOASSERTION)
    license_info_in_files: list[str] = Field(
        alias='licenseInfoInFiles', default_factory=list,
    )
    copyright_text: str = Field(alias='copyrightText', default=NONE)


class SpdxPackage(_SpdxModel):
    spdx_id: str = Field(alias='SPDXID')
    name: str
    version_info: str = Field(alias='versionInfo', default='')
    supplier: str | None = None
    download_location: str = Field(alias='downloadLocation', default=NONE)
    files_analyzed: bool = Field(alias='filesAnalyzed', default=False)
    has_files: list[str] = Field(alias='hasFiles', default_factory=list)
    homepage: str = NONE
    license_concluded: str = Field(alias='licenseConcluded', default=NOASSERTION)
    license_declared: str = Field(alias='licenseDeclared', default=NOASSERTION)
    license_info_from_files: list[str] = Field(
        alias='licenseInfoFromFiles', default_factory=list,
    )
    copyright_text: str = Field(alias='copyrightText', default=NOASSERTION)
    checksums: list[SpdxChecksum] = Field(default_factory=list)
    external_refs: list[SpdxExternalReference] = Field(
        alias='externalRefs', default_factory=list,
    )
    description: str | None = None


class SpdxRelationshipType(str, Enum):
    DEPENDS_ON = 'DEPENDS_ON'


class SpdxRelationship(_SpdxModel):
    spdx_element_id: str = Field(alias='spdxElementId')
    relationship_type: SpdxRelationshipType = Field(
        alias='relationshipType', default=SpdxRelationshipType.DEPENDS_ON,
    )
    related_spdx_element: str = Field(alias='relatedSpdxElement')


class SpdxCreationInfo(_SpdxModel):
    comment: str = ''
    created: datetime
    creators: list[str] = Field(default_factory=list)
    license_list_version: str = Field(
        alias='licenseListVersion', default=SPDX_LICENSE_LIST_VERSION,
    )

    @field_serializer('created')
    def serialize_created(self, created: datetime) -> str:
        return created.strftime('%Y-%m-%dT%H:%M:%SZ')


class SpdxExtractedLicenseInfo(_SpdxModel):
    license_id: str = Field(alias='licenseId')
    extracted_text: str = Field(alias='extractedText')
    name: str | None = None


class SpdxDocument(_SpdxModel):
    spdx_id: str = Field(alias='SPDXID', default=f'{REF_PREFIX}DOCUMENT')
    spdx_version: str = Field(alias='spdxVersion', default=SPDX_VERSION)
    data_license: str = Field(alias='dataLicense', default=DATA_LICENSE)
    name: str
    document_namespace: str = Field(alias='documentNamespace')
    creation_info: SpdxCreationInfo = Field(alias='creationInfo')
    comment: str = ''
    document_describes: list[str] = Field(
        alias='documentDescribes', default_factory=list,
    )
    packages: list[SpdxPackage] = Field(default_factory=list)
    relationships: list[SpdxRelationship] = Field(default_factory=list)
    files: list[SpdxFile] = Field(default_factory=list)
    has_extracted_licensing_infos: list[SpdxExtractedLicenseInfo] = Field(
        alias='hasExtractedLicensingInfos', default_factory=list,
    )

    def to_dict(self) -> dict:
        """Serializable form using the SPDX field names."""
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)
