import re
from enum import Enum
from fnmatch import fnmatch

from pydantic import BaseModel
from pydantic import Field
from pydantic import PrivateAttr

from sbomgraph.models.dependency_graph import DependencyGraph
from sbomgraph.models.identifier import Identifier
from sbomgraph.models.package import Issue
from sbomgraph.models.package import Package
from sbomgraph.models.package import Project


class SourceCodeOrigin(str, Enum):
    VCS = 'VCS'
    ARTIFACT = 'ARTIFACT'

    def __str__(self) -> str:
        return self.value


class FileFinding(BaseModel):
    """License and copyright findings for a single file."""
    path: str
    sha1: str = ''
    licenses: list[str] = Field(default_factory=list)
    copyrights: list[str] = Field(default_factory=list)


class ScanResult(BaseModel):
    id: Identifier
    origin: SourceCodeOrigin
    files: list[FileFinding] = Field(default_factory=list)


class Excludes(BaseModel):
    """Path globs match definition files, scope patterns match scope names."""
    paths: list[str] = Field(default_factory=list)
    scopes: list[str] = Field(default_factory=list)

    def is_path_excluded(self, path: str) -> bool:
        return any(fnmatch(path, pattern) for pattern in self.paths)

    def is_scope_excluded(self, scope_name: str) -> bool:
        return any(re.fullmatch(pattern, scope_name) for pattern in self.scopes)


class AnalysisResult(BaseModel):
    """Projects, packages and the shared dependency graph of a workspace."""
    projects: list[Project] = Field(default_factory=list)
    packages: list[Package] = Field(default_factory=list)
    dependency_graph: DependencyGraph = Field(default_factory=DependencyGraph)
    scan_results: list[ScanResult] = Field(default_factory=list)
    excludes: Excludes = Field(default_factory=Excludes)

    _projects_by_id: dict[Identifier, Project] | None = PrivateAttr(default=None)
    _packages_by_id: dict[Identifier, Package] | None = PrivateAttr(default=None)
    _included_ids: set[Identifier] | None = PrivateAttr(default=None)

    def get_project(self, identifier: Identifier) -> Project | None:
        if self._projects_by_id is None:
            self._projects_by_id = {p.id: p for p in self.projects}
        return self._projects_by_id.get(identifier)

    def get_package(self, identifier: Identifier) -> Package | None:
        if self._packages_by_id is None:
            self._packages_by_id = {p.id: p for p in self.packages}
        return self._packages_by_id.get(identifier)

    def is_project(self, identifier: Identifier) -> bool:
        return self.get_project(identifier) is not None

    def _scope_root_nodes(self, project: Project, omit_excluded: bool) -> list[int]:
        graph = self.dependency_graph
        roots: list[int] = []
        for scope_name in sorted(project.scope_names):
            if omit_excluded and self.excludes.is_scope_excluded(scope_name):
                continue
            qualified = DependencyGraph.qualify_scope(project.id, scope_name)
            roots.extend(graph.scope_roots(qualified))
        return roots

    def _included_identifiers(self) -> set[Identifier]:
        """Identifiers reachable from a non-excluded scope of a non-excluded project."""
        if self._included_ids is None:
            graph = self.dependency_graph
            roots: list[int] = []
            for project in self.projects:
                if self.excludes.is_path_excluded(project.definition_file_path):
                    continue
                roots.extend(self._scope_root_nodes(project, omit_excluded=True))
            self._included_ids = {
                graph.identifier_of(node) for node in graph.collect_dependencies(roots)
            }
        return self._included_ids

    def is_excluded(self, identifier: Identifier) -> bool:
        project = self.get_project(identifier)
        if project is not None:
            return self.excludes.is_path_excluded(project.definition_file_path)

        if not self.dependency_graph.nodes_for(identifier):
            return False
        return identifier not in self._included_identifiers()

    def get_projects(self, omit_excluded: bool = False, include_sub_projects: bool = True) -> list[Project]:
        projects = [
            p for p in self.projects
            if not omit_excluded or not self.is_excluded(p.id)
        ]

        if not include_sub_projects:
            graph = self.dependency_graph
            sub_project_ids: set[Identifier] = set()
            for project in projects:
                roots = self._scope_root_nodes(project, omit_excluded=False)
                linked = {
                    graph.identifier_of(node) for node in graph.collect_dependencies(roots)
                    if graph.nodes[node].linkage.is_project
                }
                linked.discard(project.id)
                sub_project_ids |= linked
            projects = [p for p in projects if p.id not in sub_project_ids]

        return projects

    def get_packages(self, omit_excluded: bool = False) -> list[Package]:
        return [
            p for p in self.packages
            if not omit_excluded or not self.is_excluded(p.id)
        ]

    def get_dependencies(self, identifier: Identifier, max_level: int = 1, omit_excluded: bool = True) -> set[Identifier]:
        """
        Dependencies of a project or package down to `max_level`, where 1
        means direct dependencies only and a negative value means all.
        """
        if max_level == 0:
            return set()

        graph = self.dependency_graph
        project = self.get_project(identifier)
        if project is not None:
            start = self._scope_root_nodes(project, omit_excluded)
        else:
            start = [
                child
                for node in graph.nodes_for(identifier)
                for child in graph.dependencies_of(node)
            ]

        dependencies = {
            graph.identifier_of(node) for node in graph.collect_dependencies(start, max_level)
        }
        dependencies.discard(identifier)

        if omit_excluded:
            dependencies = {d for d in dependencies if not self.is_excluded(d)}
        return dependencies

    def get_scan_results(self, identifier: Identifier, origin: SourceCodeOrigin | None = None) -> list[ScanResult]:
        return [
            r for r in self.scan_results
            if r.id == identifier and (origin is None or r.origin == origin)
        ]

    @property
    def issues(self) -> dict[str, list[Issue]]:
        """Issues recorded on graph nodes, keyed by package coordinates."""
        graph = self.dependency_graph
        issues: dict[str, list[Issue]] = {}
        for index, node in enumerate(graph.nodes):
            if node.issues:
                coordinates = graph.identifier_of(index).to_coordinates()
                issues.setdefault(coordinates, []).extend(node.issues)
        return issues
