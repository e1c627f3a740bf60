from collections import defaultdict
from collections import deque
from collections.abc import Iterable

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import PrivateAttr

from sbomgraph.models.identifier import Identifier
from sbomgraph.models.package import Issue
from sbomgraph.models.package import PackageLinkage


class DependencyGraphNode(BaseModel):
    """A fragment: one resolved identity+linkage shared by all its parents."""
    pkg: int
    linkage: PackageLinkage = PackageLinkage.DYNAMIC
    issues: list[Issue] = Field(default_factory=list)


class DependencyGraphEdge(BaseModel):
    from_: int = Field(alias='from')
    to: int

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class DependencyGraph(BaseModel):
    """
    Deduplicated dependency graph shared by all projects of a workspace.

    `packages` holds the sorted identifiers, nodes point into it by index.
    `scopes` maps qualified scope names to the indices of their root nodes.
    """
    packages: list[Identifier] = Field(default_factory=list)
    nodes: list[DependencyGraphNode] = Field(default_factory=list)
    edges: list[DependencyGraphEdge] = Field(default_factory=list)
    scopes: dict[str, list[int]] = Field(default_factory=dict)

    _adjacency: dict[int, list[int]] | None = PrivateAttr(default=None)
    _nodes_by_id: dict[Identifier, list[int]] | None = PrivateAttr(default=None)

    @staticmethod
    def qualify_scope(project_id: Identifier, scope_name: str) -> str:
        return f"{project_id.namespace}:{project_id.name}:{project_id.version}:{scope_name}"

    @staticmethod
    def unqualify_scope(qualified_scope_name: str) -> str:
        return qualified_scope_name.rsplit(':', 1)[-1]

    @property
    def fragment_count(self) -> int:
        return len(self.nodes)

    def identifier_of(self, node: int) -> Identifier:
        return self.packages[self.nodes[node].pkg]

    def dependencies_of(self, node: int) -> list[int]:
        if self._adjacency is None:
            adjacency: dict[int, list[int]] = defaultdict(list)
            for edge in self.edges:
                adjacency[edge.from_].append(edge.to)
            self._adjacency = dict(adjacency)
        return self._adjacency.get(node, [])

    def nodes_for(self, identifier: Identifier) -> list[int]:
        if self._nodes_by_id is None:
            nodes_by_id: dict[Identifier, list[int]] = defaultdict(list)
            for index, node in enumerate(self.nodes):
                nodes_by_id[self.packages[node.pkg]].append(index)
            self._nodes_by_id = dict(nodes_by_id)
        return self._nodes_by_id.get(identifier, [])

    def scope_roots(self, qualified_scope_name: str) -> list[int]:
        return self.scopes.get(qualified_scope_name, [])

    def collect_dependencies(self, start: Iterable[int], max_level: int = -1) -> set[int]:
        """
        Nodes reachable from `start`, which counts as level 1. A negative
        `max_level` means no limit.
        """
        seen: set[int] = set()
        queue = deque((node, 1) for node in start)
        while queue:
            node, level = queue.popleft()
            if node in seen:
                continue
            seen.add(node)
            if max_level < 0 or level < max_level:
                for child in self.dependencies_of(node):
                    queue.append((child, level + 1))
        return seen
