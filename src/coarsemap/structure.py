r"""Connectivity of bonded beads.

BeadStructure is a plain graph view: vertices are bead ids and edges are bonds.
It carries no simulation state and is used to check whether a group of beads
forms one connected molecule, and to split it when it does not.
"""

from typing import TYPE_CHECKING, FrozenSet, Iterable, List, Set, Tuple
import numpy as np
import scipy.sparse as ss  # type: ignore [import-untyped]
from scipy.sparse.csgraph import connected_components  # type: ignore [import-untyped]

if TYPE_CHECKING:
    from .topology import Molecule, Topology

Edge = Tuple[int, int]


def _edge(a: int, b: int) -> Edge:
    return (a, b) if a <= b else (b, a)


class BeadStructure:
    r"""Undirected graph over bead ids.

    Edges are stored with the smaller id first; adding (j, i) after (i, j) does
    nothing.
    """

    def __init__(self, vertices: Iterable[int] = (), edges: Iterable[Edge] = ()) -> None:
        self._vertices: Set[int] = set()
        self._edges: Set[Edge] = set()
        for vertex in vertices:
            self.add_vertex(vertex)
        for a, b in edges:
            self.add_edge(a, b)

    @classmethod
    def from_molecule(cls, topology: "Topology", molecule: "Molecule") -> "BeadStructure":
        """Beads of molecule connected by the bonds of topology."""
        members = set(molecule.beads)
        edges = [
            tuple(i.bead_ids)
            for i in topology.interactions
            if i.kind == "bond" and members.issuperset(i.bead_ids)
        ]
        return cls(molecule.beads, edges)  # type: ignore [arg-type]

    def add_vertex(self, vertex: int) -> None:
        self._vertices.add(int(vertex))

    def add_edge(self, a: int, b: int) -> None:
        if a not in self._vertices or b not in self._vertices:
            raise ValueError("Edge ({}, {}) connects beads outside the structure.".format(a, b))
        self._edges.add(_edge(int(a), int(b)))

    @property
    def vertices(self) -> List[int]:
        return sorted(self._vertices)

    @property
    def edges(self) -> List[Edge]:
        return sorted(self._edges)

    def components(self) -> List[List[int]]:
        r"""Vertex ids of each connected component.

        Components are ordered by their smallest vertex id; ids inside each
        component are sorted.
        """
        vertices = self.vertices
        if not vertices:
            return []
        index = {v: i for i, v in enumerate(vertices)}
        rows = [index[a] for a, _ in self._edges]
        cols = [index[b] for _, b in self._edges]
        graph = ss.coo_matrix(
            (np.ones(len(rows)), (rows, cols)), shape=(len(vertices), len(vertices))
        )
        n_components, labels = connected_components(graph, directed=False)
        groups: List[List[int]] = [[] for _ in range(n_components)]
        for vertex, label in zip(vertices, labels):
            groups[label].append(vertex)
        return sorted(groups, key=lambda g: g[0])

    def is_single_structure(self) -> bool:
        """True if the structure has vertices and all of them are connected."""
        return len(self.components()) == 1

    def get_substructure(
        self, vertices: Iterable[int], edges: Iterable[Edge]
    ) -> "BeadStructure":
        """New structure restricted to the given vertices and edges of this one."""
        vertices = list(vertices)
        edges = [_edge(a, b) for a, b in edges]
        missing_v = set(vertices) - self._vertices
        missing_e = set(edges) - self._edges
        if missing_v or missing_e:
            raise ValueError(
                "Substructure is not part of the structure (vertices {}, edges {}).".format(
                    sorted(missing_v), sorted(missing_e)
                )
            )
        return BeadStructure(vertices, edges)

    def vertex_set(self) -> FrozenSet[int]:
        return frozenset(self._vertices)

    def __len__(self) -> int:
        return len(self._vertices)

    def __repr__(self) -> str:
        return "BeadStructure(n_vertices={}, n_edges={})".format(
            len(self._vertices), len(self._edges)
        )


def break_into_structures(structure: BeadStructure) -> List[BeadStructure]:
    r"""Split a structure into its connected components.

    Each returned structure keeps the original bead ids and only the edges
    between its own vertices. A connected structure is returned as the only
    member of the list.
    """
    if structure.is_single_structure():
        return [structure]
    structures = []
    for component in structure.components():
        members = set(component)
        edges = [e for e in structure.edges if e[0] in members]
        structures.append(structure.get_substructure(component, edges))
    return structures
