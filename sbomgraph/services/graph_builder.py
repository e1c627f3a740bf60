"""
Builds a deduplicated dependency graph shared by all projects of a workspace.

The builder is generic over the raw dependency references of a package manager.
Everything manager specific is delegated to a DependencyHandler.
"""
from abc import ABC
from abc import abstractmethod
from collections.abc import Hashable
from typing import Generic
from typing import TypeVar

import structlog

from sbomgraph.core.stats import BuildStats
from sbomgraph.models.dependency_graph import DependencyGraph
from sbomgraph.models.dependency_graph import DependencyGraphEdge
from sbomgraph.models.dependency_graph import DependencyGraphNode
from sbomgraph.models.identifier import Identifier
from sbomgraph.models.package import Issue
from sbomgraph.models.package import Package
from sbomgraph.models.package import PackageLinkage

logger = structlog.get_logger('graph_builder')

D = TypeVar('D')


class DependencyHandler(ABC, Generic[D]):
    """Resolution strategy for the raw dependency references of one package manager."""

    @abstractmethod
    def identifier_for(self, dependency: D) -> Identifier:
        ...

    @abstractmethod
    def dependencies_for(self, dependency: D) -> list[D]:
        ...

    @abstractmethod
    def linkage_for(self, dependency: D) -> PackageLinkage:
        ...

    @abstractmethod
    def create_package(self, dependency: D, issues: list[Issue]) -> Package | None:
        """Return the package for an external dependency, None for projects."""

    def fingerprint(self, dependency: D) -> Hashable:
        """
        Key under which a walked reference is memoized. References with equal
        fingerprints must have equal subtrees.
        """
        return id(dependency)


class DependencyGraphBuilder(Generic[D]):
    """
    Collects root dependencies per scope and turns them into a DependencyGraph.

    Every identity+linkage combination becomes exactly one node, no matter
    how many parents reference it. Walked references are memoized by their
    fingerprint, so shared subtrees are expanded only once.
    """

    def __init__(self, handler: DependencyHandler[D]):
        self.handler = handler
        self.stats = BuildStats()
        self._memo: dict[Hashable, int] = {}
        # Keep the referenced objects alive so id() based fingerprints stay unique.
        self._walked: list[D] = []
        self._node_keys: dict[tuple[Identifier, PackageLinkage], int] = {}
        self._nodes: list[tuple[Identifier, PackageLinkage, list[Issue]]] = []
        self._edges: set[tuple[int, int]] = set()
        self._scopes: dict[str, list[int]] = {}
        self._packages: dict[Identifier, Package] = {}

    def add_dependency(self, scope_name: str, dependency: D) -> None:
        """Register `dependency` as a root of the qualified scope `scope_name`."""
        node = self._walk(dependency)
        roots = self._scopes.setdefault(scope_name, [])
        if node not in roots:
            roots.append(node)

    def add_scope(self, scope_name: str) -> None:
        """Register a scope without any dependencies."""
        self._scopes.setdefault(scope_name, [])

    def packages(self) -> list[Package]:
        """The resolved packages collected so far, sorted by identifier."""
        return [self._packages[identifier] for identifier in sorted(self._packages)]

    def build(self) -> DependencyGraph:
        identifiers = sorted({identifier for identifier, _, _ in self._nodes})
        package_index = {identifier: index for index, identifier in enumerate(identifiers)}

        nodes = [
            DependencyGraphNode(pkg=package_index[identifier], linkage=linkage, issues=list(issues))
            for identifier, linkage, issues in self._nodes
        ]
        edges = [
            DependencyGraphEdge(from_=source, to=target)
            for source, target in sorted(self._edges)
        ]

        logger.debug(
            'Dependency graph built',
            nodes=len(nodes),
            edges=len(edges),
            scopes=len(self._scopes),
            references=self.stats.references,
            memo_hits=self.stats.memo_hits,
        )
        return DependencyGraph(
            packages=identifiers,
            nodes=nodes,
            edges=edges,
            scopes={name: list(roots) for name, roots in sorted(self._scopes.items())},
        )

    def _walk(self, dependency: D) -> int:
        self.stats.inc_references()
        key = self.handler.fingerprint(dependency)
        node = self._memo.get(key)
        if node is not None:
            self.stats.inc_memo_hits()
            return node

        identifier = self.handler.identifier_for(dependency)
        linkage = self.handler.linkage_for(dependency)
        node = self._node_keys.get((identifier, linkage))
        if node is None:
            node = self._add_node(dependency, identifier, linkage)

        # Memoize before descending so that cycles terminate.
        self._memo[key] = node
        self._walked.append(dependency)

        for child in self.handler.dependencies_for(dependency):
            child_node = self._walk(child)
            if child_node != node:
                self._edges.add((node, child_node))

        return node

    def _add_node(self, dependency: D, identifier: Identifier, linkage: PackageLinkage) -> int:
        issues: list[Issue] = []
        package = self.handler.create_package(dependency, issues)
        if package is not None:
            self._add_package(package)

        node = len(self._nodes)
        self._nodes.append((identifier, linkage, issues))
        self._node_keys[(identifier, linkage)] = node
        return node

    def _add_package(self, package: Package) -> None:
        if package.id in self._packages:
            # Packages are immutable once registered, the first one wins.
            self.stats.inc_duplicate_packages()
            logger.debug('Dropping duplicate package', id=package.id.to_coordinates())
            return
        self._packages[package.id] = package
        self.stats.inc_packages()
