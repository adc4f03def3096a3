r"""Mapping of a whole configuration onto its coarse-grained counterpart."""

from typing import Iterator, List
from .beadmap import Map
from .topology import Topology


class TopologyMap:
    r"""Ordered collection of molecule maps between two topologies.

    The input and output topologies are fixed at construction. apply is called
    once per frame: it copies step, time and box to the output and then applies
    every molecule map in the order it was added. The output topology must not
    be touched by anything else while a TopologyMap drives it.
    """

    def __init__(self, source: Topology, target: Topology, check_reduced: bool = False) -> None:
        r"""
        Arguments
        ---------
        source (Topology):
            Fine-grained topology; only read.
        target (Topology):
            Coarse-grained topology; written by apply.
        check_reduced (boolean):
            Passed to Topology.boundary; if truthy, frames with non-reduced
            triclinic boxes are rejected.
        """
        self.source = source
        self.target = target
        self.check_reduced = check_reduced
        self._maps: List[Map] = []

    def add_molecule_map(self, molecule_map: Map) -> None:
        self._maps.append(molecule_map)

    def apply(self) -> None:
        """Update the target topology from the current state of the source."""
        self.target.step = self.source.step
        self.target.time = self.source.time
        self.target.box = self.source.box
        bc = self.source.boundary(check_reduced=self.check_reduced)
        for molecule_map in self._maps:
            molecule_map.apply(bc)

    @property
    def maps(self) -> List[Map]:
        return list(self._maps)

    def __iter__(self) -> Iterator[Map]:
        return iter(self._maps)

    def __len__(self) -> int:
        return len(self._maps)
