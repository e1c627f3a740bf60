"""License processing, resolution and license text lookup."""
import re
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Protocol

from sbomgraph.models.identifier import Identifier
from sbomgraph.models.package import ProcessedDeclaredLicense
from sbomgraph.models.result import AnalysisResult
from sbomgraph.models.result import FileFinding
from sbomgraph.models.result import SourceCodeOrigin
from sbomgraph.models.spdx import DOCUMENT_REF_PREFIX
from sbomgraph.models.spdx import LICENSE_REF_PREFIX
from sbomgraph.models.spdx import NOASSERTION
from sbomgraph.models.spdx import NONE

# Common declared license names that are not SPDX identifiers.
LICENSE_ALIASES = {
    'apache 2': 'Apache-2.0',
    'apache 2.0': 'Apache-2.0',
    'apache license 2.0': 'Apache-2.0',
    'apache license, version 2.0': 'Apache-2.0',
    'apache-2': 'Apache-2.0',
    'apache2': 'Apache-2.0',
    'bsd': 'BSD-3-Clause',
    'bsd-like': 'BSD-3-Clause',
    'gpl': 'GPL-2.0-or-later',
    'gplv2': 'GPL-2.0-only',
    'gplv3': 'GPL-3.0-only',
    'isc license': 'ISC',
    'lgpl': 'LGPL-2.1-or-later',
    'mit license': 'MIT',
    'mit/x11': 'MIT',
    'mpl 2.0': 'MPL-2.0',
    'public domain': 'LicenseRef-public-domain',
    'wtfpl': 'WTFPL',
}

_OPERATORS = {'AND', 'OR', 'WITH'}
_TOKEN = re.compile(r'[()]|[^\s()]+')
_LICENSE_ID = re.compile(r'^[A-Za-z0-9][A-Za-z0-9.+-]*$')


def _is_spdx_expression(value: str) -> bool:
    tokens = _TOKEN.findall(value)
    if not tokens:
        return False
    depth = 0
    expect_license = True
    for token in tokens:
        if token == '(':
            if not expect_license:
                return False
            depth += 1
        elif token == ')':
            if expect_license:
                return False
            depth -= 1
            if depth < 0:
                return False
        elif token in _OPERATORS:
            if expect_license:
                return False
            expect_license = True
        else:
            if not expect_license or not _LICENSE_ID.match(token):
                return False
            expect_license = False
    return depth == 0 and not expect_license


def process_declared_licenses(declared: set[str]) -> ProcessedDeclaredLicense:
    """
    Map declared license strings to an SPDX expression. Strings that are
    neither known aliases nor valid expressions are reported as unmapped.
    """
    mapped: dict[str, str] = {}
    unmapped: set[str] = set()
    expressions: set[str] = set()

    for license_name in declared:
        alias = LICENSE_ALIASES.get(license_name.strip().lower())
        if alias is not None:
            mapped[license_name] = alias
            expressions.add(alias)
        elif license_name in (NONE, NOASSERTION):
            continue
        elif _is_spdx_expression(license_name):
            expressions.add(license_name)
        else:
            unmapped.add(license_name)

    parts = sorted(expressions)
    if len(parts) > 1:
        parts = [f"({part})" if ' ' in part else part for part in parts]
    if not parts and NONE in declared:
        parts = [NONE]
    return ProcessedDeclaredLicense(
        spdx_expression=' AND '.join(parts) or None,
        mapped=mapped,
        unmapped=unmapped,
    )


def license_ids(expression: str | None) -> set[str]:
    """License identifiers referenced by an SPDX expression, exceptions excluded."""
    if not expression:
        return set()

    ids = set()
    after_with = False
    for token in _TOKEN.findall(expression):
        if token in ('(', ')', 'AND', 'OR'):
            continue
        if token == 'WITH':
            after_with = True
            continue
        if after_with:
            after_with = False
            continue
        ids.add(token)
    return ids


def is_license_ref(license_id: str) -> bool:
    """Whether an id is not on the SPDX license list and needs its text included."""
    return license_id.startswith(LICENSE_REF_PREFIX) or (
        license_id.startswith(DOCUMENT_REF_PREFIX) and f':{LICENSE_REF_PREFIX}' in license_id
    )


@dataclass
class ResolvedLicenseInfo:
    concluded: str | None = None
    declared: str | None = None
    detected: set[str] = field(default_factory=set)
    copyrights: set[str] = field(default_factory=set)


class LicenseInfoResolver(Protocol):
    def resolve_license_info(self, identifier: Identifier) -> ResolvedLicenseInfo:
        ...

    def file_findings(self, identifier: Identifier, origin: SourceCodeOrigin) -> list[FileFinding]:
        ...


class LicenseTextProvider(Protocol):
    def get_license_text(self, license_id: str) -> str | None:
        ...


class ResultLicenseInfoResolver:
    """Resolves license information from the data contained in an AnalysisResult."""

    def __init__(self, result: AnalysisResult):
        self.result = result

    def resolve_license_info(self, identifier: Identifier) -> ResolvedLicenseInfo:
        info = ResolvedLicenseInfo()

        package = self.result.get_package(identifier)
        project = self.result.get_project(identifier)
        if package is not None:
            info.concluded = package.concluded_license
            info.declared = package.declared_licenses_processed.spdx_expression
        elif project is not None:
            info.declared = project.declared_licenses_processed.spdx_expression

        for scan_result in self.result.get_scan_results(identifier):
            for finding in scan_result.files:
                for expression in finding.licenses:
                    info.detected.update(license_ids(expression))
                info.copyrights.update(finding.copyrights)

        return info

    def file_findings(self, identifier: Identifier, origin: SourceCodeOrigin) -> list[FileFinding]:
        findings: dict[str, FileFinding] = {}
        for scan_result in self.result.get_scan_results(identifier, origin):
            for finding in scan_result.files:
                findings.setdefault(finding.path, finding)
        return [findings[path] for path in sorted(findings)]


class DirectoryLicenseTextProvider:
    """Looks up license texts in a list of directories, first match wins."""

    def __init__(self, directories: list[Path] | None = None):
        self.directories = [Path(d) for d in directories or []]

    def get_license_text(self, license_id: str) -> str | None:
        for directory in self.directories:
            for candidate in (directory / license_id, directory / f'{license_id}.txt'):
                if candidate.is_file():
                    return candidate.read_text(encoding='utf-8')
        return None
