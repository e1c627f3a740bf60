"""
Maps an AnalysisResult to an SPDX 2.2 document.

Projects become packages of the "project" variant. Every external package is
represented by exactly one variant, chosen by select_spdx_package_type.
"""
import re
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from datetime import timezone

import structlog

from sbomgraph.__version__ import __version__
from sbomgraph.__version__ import TOOL_NAME
from sbomgraph.models.identifier import Identifier
from sbomgraph.models.package import Package
from sbomgraph.models.package import VcsInfo
from sbomgraph.models.result import AnalysisResult
from sbomgraph.models.result import SourceCodeOrigin
from sbomgraph.models.spdx import NOASSERTION
from sbomgraph.models.spdx import NONE
from sbomgraph.models.spdx import ORGANIZATION
from sbomgraph.models.spdx import PERSON
from sbomgraph.models.spdx import REF_PREFIX
from sbomgraph.models.spdx import SpdxChecksum
from sbomgraph.models.spdx import SpdxCreationInfo
from sbomgraph.models.spdx import SpdxDocument
from sbomgraph.models.spdx import SpdxExternalReference
from sbomgraph.models.spdx import SpdxExtractedLicenseInfo
from sbomgraph.models.spdx import SpdxFile
from sbomgraph.models.spdx import SpdxPackage
from sbomgraph.models.spdx import SpdxPackageType
from sbomgraph.models.spdx import SpdxRelationship
from sbomgraph.models.spdx import TOOL
from sbomgraph.services.licenses import is_license_ref
from sbomgraph.services.licenses import license_ids
from sbomgraph.services.licenses import LicenseInfoResolver
from sbomgraph.services.licenses import LicenseTextProvider

logger = structlog.get_logger('spdx_mapper')

_INVALID_ID_CHARS = re.compile(r'[^A-Za-z0-9.-]')


@dataclass
class SpdxDocumentParams:
    document_name: str = 'Unnamed document'
    document_comment: str = ''
    creation_info_comment: str = ''
    creation_info_person: str = ''
    creation_info_organization: str = ''
    file_information_enabled: bool = True


class FileIndexCounter:
    """Hands out file indexes, unique within one mapping call."""

    def __init__(self, start: int = 1):
        self._next = start
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            index = self._next
            self._next += 1
            return index


def select_spdx_package_type(package: Package, has_files: bool) -> SpdxPackageType:
    """
    VCS is preferred, unless it yields no analyzed files and a source
    artifact is available. Packages without either are represented by
    their binary artifact.
    """
    has_vcs = bool(package.vcs_processed.url.strip())
    has_source = bool(package.source_artifact.url.strip())

    if has_vcs and (has_files or not has_source):
        return SpdxPackageType.VCS_PACKAGE
    if has_source:
        return SpdxPackageType.SOURCE_PACKAGE
    return SpdxPackageType.BINARY_PACKAGE


def to_spdx_id(identifier: Identifier, package_type: SpdxPackageType) -> str:
    raw = f"{package_type.infix}-{identifier.to_coordinates()}{package_type.suffix}"
    return REF_PREFIX + _INVALID_ID_CHARS.sub('-', raw)


def _vcs_download_location(vcs: VcsInfo) -> str:
    if not vcs.url.strip():
        return NONE
    location = f"{(vcs.type or 'git').lower()}+{vcs.url}"
    if vcs.revision:
        location += f"@{vcs.revision}"
    if vcs.path:
        location += f"#{vcs.path}"
    return location


def _download_location(package: Package, package_type: SpdxPackageType) -> str:
    if package_type is SpdxPackageType.BINARY_PACKAGE:
        return package.binary_artifact.url or NONE
    if package_type is SpdxPackageType.SOURCE_PACKAGE:
        return package.source_artifact.url or NONE
    return _vcs_download_location(package.vcs_processed)


def _checksums(package: Package, package_type: SpdxPackageType) -> list[SpdxChecksum]:
    if package_type is SpdxPackageType.SOURCE_PACKAGE:
        hash_ = package.source_artifact.hash
    elif package_type is SpdxPackageType.BINARY_PACKAGE:
        hash_ = package.binary_artifact.hash
    else:
        return []

    if hash_.is_empty():
        return []
    return [SpdxChecksum(algorithm=hash_.algorithm.spdx_name, checksum_value=hash_.value)]


def get_spdx_files(
    identifier: Identifier,
    origin: SourceCodeOrigin,
    resolver: LicenseInfoResolver,
    counter: FileIndexCounter,
) -> list[SpdxFile]:
    files = []
    for finding in resolver.file_findings(identifier, origin):
        ids = sorted({i for expression in finding.licenses for i in license_ids(expression)})
        files.append(
            SpdxFile(
                spdx_id=f"{REF_PREFIX}File-{counter.next()}",
                file_name=finding.path,
                checksums=[SpdxChecksum(algorithm='SHA1', checksum_value=finding.sha1)] if finding.sha1 else [],
                license_concluded=NOASSERTION,
                license_info_in_files=ids or [NONE],
                copyright_text='\n'.join(sorted(finding.copyrights)) or NONE,
            ),
        )
    return files


def to_spdx_package(
    package: Package,
    package_type: SpdxPackageType,
    resolver: LicenseInfoResolver,
    files: list[SpdxFile],
) -> SpdxPackage:
    info = resolver.resolve_license_info(package.id)
    files_analyzed = bool(files)

    if not package.declared_licenses:
        license_declared = NONE
    else:
        license_declared = info.declared or NOASSERTION

    license_info_from_files = []
    if files_analyzed:
        license_info_from_files = sorted(info.detected) or [NONE]

    external_refs = []
    if package_type is not SpdxPackageType.PROJECT and package.purl:
        external_refs.append(
            SpdxExternalReference(
                reference_category='PACKAGE-MANAGER',
                reference_type='purl',
                reference_locator=package.purl,
            ),
        )

    return SpdxPackage(
        spdx_id=to_spdx_id(package.id, package_type),
        name=package.id.name,
        version_info=package.id.version,
        supplier=f"{PERSON} {', '.join(sorted(package.authors))}" if package.authors else None,
        download_location=_download_location(package, package_type),
        files_analyzed=files_analyzed,
        has_files=[f.spdx_id for f in files],
        homepage=package.homepage_url or NONE,
        license_concluded=info.concluded or NOASSERTION,
        license_declared=license_declared,
        license_info_from_files=license_info_from_files,
        copyright_text='\n'.join(sorted(info.copyrights)) or NONE,
        checksums=_checksums(package, package_type),
        external_refs=external_refs,
        description=package.description or None,
    )


def add_extracted_license_info(document: SpdxDocument, text_provider: LicenseTextProvider) -> SpdxDocument:
    """Attach the texts of all LicenseRef ids used in the document."""
    expressions = []
    for package in document.packages:
        expressions.extend([package.license_concluded, package.license_declared, *package.license_info_from_files])
    for file in document.files:
        expressions.extend([file.license_concluded, *file.license_info_in_files])

    refs = sorted({
        license_id
        for expression in expressions
        for license_id in license_ids(expression)
        if is_license_ref(license_id)
    })

    extracted = []
    for license_id in refs:
        text = text_provider.get_license_text(license_id)
        if text is None:
            logger.warning('No license text available', license_id=license_id)
            continue
        extracted.append(
            SpdxExtractedLicenseInfo(license_id=license_id, extracted_text=text, name=license_id),
        )

    return document.model_copy(update={'has_extracted_licensing_infos': extracted})


class SpdxDocumentMapper:

    def map(
        self,
        result: AnalysisResult,
        resolver: LicenseInfoResolver,
        text_provider: LicenseTextProvider,
        params: SpdxDocumentParams,
    ) -> SpdxDocument:
        counter = FileIndexCounter()
        spdx_ids: dict[Identifier, str] = {}
        project_packages: list[SpdxPackage] = []
        packages: list[SpdxPackage] = []
        files: list[SpdxFile] = []
        dependencies: list[tuple[str, set[Identifier]]] = []

        projects = result.get_projects(omit_excluded=True, include_sub_projects=False)
        for project in sorted(projects, key=lambda p: p.id):
            project_files = []
            if params.file_information_enabled:
                project_files = get_spdx_files(project.id, SourceCodeOrigin.VCS, resolver, counter)

            spdx_package = to_spdx_package(
                project.to_package(), SpdxPackageType.PROJECT, resolver, project_files,
            )
            spdx_ids[project.id] = spdx_package.spdx_id
            project_packages.append(spdx_package)
            files.extend(project_files)
            dependencies.append((spdx_package.spdx_id, result.get_dependencies(project.id)))

        for package in sorted(result.get_packages(omit_excluded=True), key=lambda p: p.id):
            package_files = []
            if params.file_information_enabled:
                package_files = get_spdx_files(package.id, SourceCodeOrigin.ARTIFACT, resolver, counter)

            package_type = select_spdx_package_type(package, bool(package_files))
            # The binary fallback never lists files, but they still belong to the document.
            attached_files = [] if package_type is SpdxPackageType.BINARY_PACKAGE else package_files

            spdx_package = to_spdx_package(package, package_type, resolver, attached_files)
            spdx_ids[package.id] = spdx_package.spdx_id
            packages.append(spdx_package)
            files.extend(package_files)
            dependencies.append((spdx_package.spdx_id, result.get_dependencies(package.id)))

        relationships = []
        for source_id, dependency_ids in dependencies:
            for dependency_id in sorted(dependency_ids):
                target = spdx_ids.get(dependency_id)
                if target is None:
                    # Sub-projects are not part of the document but may still be depended on.
                    package_type = (
                        SpdxPackageType.PROJECT if result.is_project(dependency_id)
                        else SpdxPackageType.BINARY_PACKAGE
                    )
                    target = to_spdx_id(dependency_id, package_type)
                relationships.append(
                    SpdxRelationship(spdx_element_id=source_id, related_spdx_element=target),
                )
        relationships.sort(key=lambda r: (r.spdx_element_id, r.related_spdx_element))

        creators = []
        if params.creation_info_person:
            creators.append(f"{PERSON} {params.creation_info_person}")
        if params.creation_info_organization:
            creators.append(f"{ORGANIZATION} {params.creation_info_organization}")
        creators.append(f"{TOOL} {TOOL_NAME}-{__version__}")

        document = SpdxDocument(
            name=params.document_name,
            document_namespace=f"spdx://{uuid.uuid4()}",
            creation_info=SpdxCreationInfo(
                comment=params.creation_info_comment,
                created=datetime.now(timezone.utc).replace(microsecond=0),
                creators=creators,
            ),
            comment=params.document_comment,
            document_describes=[p.spdx_id for p in project_packages],
            packages=project_packages + packages,
            relationships=relationships,
            files=files,
        )

        logger.info(
            'SPDX document mapped',
            packages=len(document.packages),
            relationships=len(relationships),
            files=len(files),
        )
        return add_extracted_license_info(document, text_provider)
