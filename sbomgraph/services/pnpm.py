"""Dependency resolution for pnpm workspaces."""
from collections.abc import Hashable
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from pathlib import Path

import structlog

from sbomgraph.core.errors import ListingError
from sbomgraph.core.validation import validate_listing_file
from sbomgraph.models.dependency_graph import DependencyGraph
from sbomgraph.models.identifier import Identifier
from sbomgraph.models.module_info import load_pnpm_list
from sbomgraph.models.module_info import ModuleInfo
from sbomgraph.models.module_info import PnpmDependency
from sbomgraph.models.package import Hash
from sbomgraph.models.package import Issue
from sbomgraph.models.package import Package
from sbomgraph.models.package import PackageLinkage
from sbomgraph.models.package import Project
from sbomgraph.models.package import RemoteArtifact
from sbomgraph.models.package import Severity
from sbomgraph.models.package_json import parse_package_json
from sbomgraph.models.result import AnalysisResult
from sbomgraph.models.result import Excludes
from sbomgraph.services.graph_builder import DependencyGraphBuilder
from sbomgraph.services.graph_builder import DependencyHandler
from sbomgraph.services.licenses import process_declared_licenses
from sbomgraph.services.npm import expand_npm_shortcut_url
from sbomgraph.services.npm import fix_npm_download_url
from sbomgraph.services.npm import map_npm_licenses
from sbomgraph.services.npm import NON_EXISTING_SEMVER
from sbomgraph.services.npm import parse_npm_authors
from sbomgraph.services.npm import parse_npm_vcs_info
from sbomgraph.services.npm import split_npm_namespace_and_name
from sbomgraph.services.vcs import parse_vcs_url
from sbomgraph.services.vcs import process_package_vcs
from sbomgraph.services.vcs import to_archive_download_url

logger = structlog.get_logger('pnpm')

MANAGER_NAME = 'PNPM'
PACKAGE_TYPE = 'NPM'


class Scope(str, Enum):
    DEPENDENCIES = 'dependencies'
    DEV_DEPENDENCIES = 'devDependencies'

    def __str__(self) -> str:
        return self.value


def get_scope_dependencies(module_info: ModuleInfo, scope: Scope) -> list[PnpmDependency]:
    if scope is Scope.DEPENDENCIES:
        return [*module_info.dependencies.values(), *module_info.optional_dependencies.values()]
    return list(module_info.dev_dependencies.values())


def canonical_path(path: str | Path) -> Path:
    return Path(path).resolve()


def parse_package(package_json_file: Path, issues: list[Issue] | None = None) -> Package:
    """
    Create the package for an installed dependency from its package.json.
    Non-fatal anomalies are appended to `issues`.
    """
    issues = issues if issues is not None else []
    package_json = parse_package_json(package_json_file)
    for key in package_json.invalid_fields:
        issues.append(
            Issue(
                source=MANAGER_NAME,
                message=f"Ignoring malformed field '{key}' in '{package_json_file}'.",
                severity=Severity.WARNING,
            ),
        )

    # TODO: Fall back to a name derived from the install path if the name is unset.
    namespace, name = split_npm_namespace_and_name(package_json.name or '')

    version = package_json.version
    if not version:
        issues.append(
            Issue(
                source=MANAGER_NAME,
                message=f"No version declared in '{package_json_file}', using '{NON_EXISTING_SEMVER}'.",
                severity=Severity.WARNING,
            ),
        )
        version = NON_EXISTING_SEMVER

    declared_licenses = map_npm_licenses(package_json.licenses)
    homepage_url = package_json.homepage or ''

    download_url = expand_npm_shortcut_url(package_json.resolved or '')
    if not download_url:
        # The normalized "from" specifier may carry a URL as its version.
        from_version = (package_json.from_ or '').rpartition('@')[2]
        expanded = expand_npm_shortcut_url(from_version)
        download_url = expanded if expanded != from_version else ''

    try:
        hash_ = Hash.create(package_json.integrity or '')
    except ValueError as e:
        issues.append(
            Issue(source=MANAGER_NAME, message=str(e), severity=Severity.WARNING),
        )
        hash_ = Hash()

    download_url = fix_npm_download_url(download_url)
    if not download_url:
        issues.append(
            Issue(
                source=MANAGER_NAME,
                message=f"No download URL found for '{package_json.name}'.",
                severity=Severity.HINT,
            ),
        )

    vcs_from_package = parse_npm_vcs_info(package_json)
    vcs_from_download_url = parse_vcs_url(download_url)
    if vcs_from_download_url.url != download_url:
        vcs_from_package = vcs_from_download_url.merge(vcs_from_package)

    return Package(
        id=Identifier(type=PACKAGE_TYPE, namespace=namespace, name=name, version=version),
        authors=parse_npm_authors(package_json),
        declared_licenses=declared_licenses,
        declared_licenses_processed=process_declared_licenses(declared_licenses),
        description=package_json.description or '',
        homepage_url=homepage_url,
        binary_artifact=RemoteArtifact(),
        source_artifact=RemoteArtifact(
            url=to_archive_download_url(vcs_from_download_url) or download_url,
            hash=hash_,
        ),
        vcs=vcs_from_package,
        vcs_processed=process_package_vcs(vcs_from_package, homepage_url),
    )


def _fallback_project_name(project_dir: Path, analysis_root: Path) -> str:
    try:
        relative = project_dir.relative_to(analysis_root).as_posix()
    except ValueError:
        relative = project_dir.name
    return analysis_root.name if relative in ('', '.') else relative


def parse_project(package_json_file: Path, analysis_root: Path) -> Project:
    package_json = parse_package_json(package_json_file)
    if package_json.invalid_fields:
        logger.warning(
            'Ignoring malformed manifest fields',
            definition_file=str(package_json_file),
            fields=package_json.invalid_fields,
        )
    project_dir = canonical_path(package_json_file.parent)
    analysis_root = canonical_path(analysis_root)

    namespace, name = split_npm_namespace_and_name(package_json.name or '')
    if not name.strip():
        name = _fallback_project_name(project_dir, analysis_root)
        logger.warning(
            'Project has no name, using fallback',
            definition_file=str(package_json_file),
            name=name,
        )

    try:
        definition_file_path = (project_dir / package_json_file.name).relative_to(analysis_root).as_posix()
    except ValueError:
        definition_file_path = str(project_dir / package_json_file.name)

    declared_licenses = map_npm_licenses(package_json.licenses)
    homepage_url = package_json.homepage or ''
    vcs = parse_npm_vcs_info(package_json)

    return Project(
        id=Identifier(
            type=MANAGER_NAME, namespace=namespace, name=name, version=package_json.version or '',
        ),
        definition_file_path=definition_file_path,
        authors=parse_npm_authors(package_json),
        declared_licenses=declared_licenses,
        declared_licenses_processed=process_declared_licenses(declared_licenses),
        description=package_json.description or '',
        homepage_url=homepage_url,
        vcs=vcs,
        vcs_processed=process_package_vcs(vcs, homepage_url),
    )


class PnpmDependencyHandler(DependencyHandler[PnpmDependency]):
    """Tells workspace projects apart from external packages by their install path."""

    def __init__(self):
        self._workspace_module_dirs: set[Path] = set()
        self._project_versions: dict[Path, str] = {}

    def set_workspace_module_dirs(self, dirs) -> None:
        self._workspace_module_dirs = {canonical_path(d) for d in dirs}
        self._project_versions.clear()

    def is_project(self, dependency: PnpmDependency) -> bool:
        return canonical_path(dependency.path) in self._workspace_module_dirs

    def _project_version(self, project_dir: Path) -> str:
        version = self._project_versions.get(project_dir)
        if version is None:
            version = parse_package_json(project_dir / 'package.json').version or ''
            self._project_versions[project_dir] = version
        return version

    def fingerprint(self, dependency: PnpmDependency) -> Hashable:
        # The install path of a dependency contains its name, version and peer set.
        return (str(canonical_path(dependency.path)), dependency.version)

    def identifier_for(self, dependency: PnpmDependency) -> Identifier:
        namespace, name = split_npm_namespace_and_name(dependency.from_)
        if self.is_project(dependency):
            return Identifier(
                type=MANAGER_NAME,
                namespace=namespace,
                name=name,
                version=self._project_version(canonical_path(dependency.path)),
            )

        version = dependency.version
        if version.startswith('link:') or version.startswith('file:'):
            version = ''
        return Identifier(type=PACKAGE_TYPE, namespace=namespace, name=name, version=version)

    def dependencies_for(self, dependency: PnpmDependency) -> list[PnpmDependency]:
        return [*dependency.dependencies.values(), *dependency.optional_dependencies.values()]

    def linkage_for(self, dependency: PnpmDependency) -> PackageLinkage:
        if self.is_project(dependency):
            return PackageLinkage.PROJECT_DYNAMIC
        return PackageLinkage.DYNAMIC

    def create_package(self, dependency: PnpmDependency, issues: list[Issue]) -> Package | None:
        if self.is_project(dependency):
            return None
        return parse_package(Path(dependency.path) / 'package.json', issues)


@dataclass
class PnpmListing:
    """Saved output of `pnpm list --json --recursive` per scope."""
    module_infos: dict[Scope, list[ModuleInfo]] = field(default_factory=dict)

    @classmethod
    def load(cls, dependencies_file: Path, dev_dependencies_file: Path | None = None) -> 'PnpmListing':
        files = {Scope.DEPENDENCIES: dependencies_file}
        if dev_dependencies_file is not None:
            files[Scope.DEV_DEPENDENCIES] = dev_dependencies_file

        module_infos = {}
        for scope, path in files.items():
            validate_listing_file(Path(path))
            module_infos[scope] = load_pnpm_list(path)
        return cls(module_infos)

    @property
    def scopes(self) -> list[Scope]:
        return [scope for scope in Scope if scope in self.module_infos]

    def workspace_module_dirs(self) -> list[Path]:
        dirs = {
            canonical_path(module_info.path)
            for module_infos in self.module_infos.values()
            for module_info in module_infos
        }
        return sorted(dirs)

    def module_info_for(self, scope: Scope, project_dir: Path) -> ModuleInfo:
        matches = [
            module_info for module_info in self.module_infos.get(scope, [])
            if canonical_path(module_info.path) == project_dir
        ]
        if len(matches) != 1:
            raise ListingError(
                f"Expected exactly one '{scope}' listing entry for {project_dir}, found {len(matches)}.",
            )
        return matches[0]


class PnpmAnalyzer:
    """Resolves the projects of a pnpm workspace into an AnalysisResult."""

    def __init__(self, analysis_root: Path, listing: PnpmListing, excludes: Excludes | None = None):
        self.analysis_root = canonical_path(analysis_root)
        self.listing = listing
        self.excludes = excludes or Excludes()
        self.handler = PnpmDependencyHandler()
        self.graph_builder = DependencyGraphBuilder(self.handler)

    def resolve_dependencies(self) -> list[Project]:
        workspace_module_dirs = self.listing.workspace_module_dirs()
        self.handler.set_workspace_module_dirs(workspace_module_dirs)

        projects = []
        for project_dir in workspace_module_dirs:
            project = parse_project(project_dir / 'package.json', self.analysis_root)

            scope_names = set()
            for scope in self.listing.scopes:
                qualified_scope_name = DependencyGraph.qualify_scope(project.id, str(scope))
                module_info = self.listing.module_info_for(scope, project_dir)

                self.graph_builder.add_scope(qualified_scope_name)
                for dependency in get_scope_dependencies(module_info, scope):
                    self.graph_builder.add_dependency(qualified_scope_name, dependency)

                scope_names.add(str(scope))

            project.scope_names = scope_names
            logger.info(
                'Resolved project',
                project=project.id.to_coordinates(),
                scopes=sorted(scope_names),
            )
            projects.append(project)

        return projects

    def analyze(self) -> AnalysisResult:
        projects = self.resolve_dependencies()
        graph = self.graph_builder.build()
        packages = self.graph_builder.packages()

        stats = self.graph_builder.stats
        logger.info(
            'Analysis complete',
            projects=len(projects),
            packages=len(packages),
            fragments=graph.fragment_count,
            references=stats.references,
            memo_hits=stats.memo_hits,
            elapsed=f"{stats.elapsed_time:.2f}s",
        )

        return AnalysisResult(
            projects=sorted(projects, key=lambda p: p.id),
            packages=packages,
            dependency_graph=graph,
            excludes=self.excludes,
        )
