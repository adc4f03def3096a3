r"""Nonbonded exclusions and their propagation through a CG mapping.

An ExclusionList is a symmetric relation over bead ids: a pair in the list is
skipped when nonbonded interactions are evaluated. Topologies derive theirs from
bonded interactions. propagate_exclusions translates the exclusions of a CG
molecule into exclusions between the atoms it was mapped from, which is what
reference potentials for bottom-up parameterization need.
"""

from itertools import combinations, product
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterable, Iterator, List, Set, Tuple
import logging
from .errors import MappingError

if TYPE_CHECKING:
    from .topology import Molecule, Topology

logger = logging.getLogger(__name__)

Pair = Tuple[int, int]


def _ordered(a: int, b: int) -> Pair:
    return (a, b) if a < b else (b, a)


class ExclusionList:
    r"""Set of excluded bead pairs.

    Pairs are unordered; excluding (i, j) also excludes (j, i). A bead is never
    excluded from itself.
    """

    def __init__(self, pairs: Iterable[Pair] = ()) -> None:
        self._partners: Dict[int, Set[int]] = {}
        for a, b in pairs:
            self.exclude_pair(a, b)

    def exclude_pair(self, a: int, b: int) -> None:
        if a == b:
            return
        self._partners.setdefault(a, set()).add(b)
        self._partners.setdefault(b, set()).add(a)

    def remove_pair(self, a: int, b: int) -> None:
        for x, y in ((a, b), (b, a)):
            partners = self._partners.get(x)
            if partners is None:
                continue
            partners.discard(y)
            if not partners:
                del self._partners[x]

    def exclude(self, bead_ids: Iterable[int]) -> None:
        """Exclude every pair among bead_ids."""
        for a, b in combinations(list(bead_ids), 2):
            self.exclude_pair(a, b)

    def remove(self, bead_ids: Iterable[int]) -> None:
        """Drop the exclusion of every pair among bead_ids."""
        for a, b in combinations(list(bead_ids), 2):
            self.remove_pair(a, b)

    def is_excluded(self, a: int, b: int) -> bool:
        return b in self._partners.get(a, ())

    def excluded_with(self, bead_id: int) -> FrozenSet[int]:
        return frozenset(self._partners.get(bead_id, ()))

    def pairs(self) -> List[Pair]:
        """All excluded pairs as sorted (low, high) tuples."""
        found = set()
        for a, partners in self._partners.items():
            for b in partners:
                found.add(_ordered(a, b))
        return sorted(found)

    def clear(self) -> None:
        self._partners.clear()

    def create_exclusions(self, topology: "Topology") -> None:
        r"""Rebuild from the bonded interactions of topology.

        All beads taking part in the same interaction exclude each other, so a
        bond excludes its pair, an angle its three beads and a dihedral its
        four.
        """
        self.clear()
        for interaction in topology.interactions:
            self.exclude(interaction.bead_ids)

    def __contains__(self, pair: object) -> bool:
        try:
            a, b = pair  # type: ignore [misc]
        except (TypeError, ValueError):
            return False
        return self.is_excluded(a, b)

    def __iter__(self) -> Iterator[Pair]:
        return iter(self.pairs())

    def __len__(self) -> int:
        return sum(len(p) for p in self._partners.values()) // 2

    def __str__(self) -> str:
        # one line per bead: 1-based id followed by its higher-numbered partners
        lines = []
        for a in sorted(self._partners):
            higher = sorted(b for b in self._partners[a] if b > a)
            if higher:
                lines.append(" ".join(str(i + 1) for i in [a] + higher))
        return "\n".join(lines)

    def __repr__(self) -> str:
        return "ExclusionList(n_pairs={})".format(len(self))


def propagate_exclusions(
    atomistic: "Topology",
    molecule: "Molecule",
    cg: "Topology",
    cg_molecule: "Molecule",
) -> ExclusionList:
    r"""Compute atomistic exclusions consistent with a CG mapping of a molecule.

    Starting from every atom pair of molecule excluded:
        1. pairs of atoms mapped into the same CG bead are released;
        2. pairs of atoms whose CG beads exclude each other in cg are released.
    What remains are the atom pairs whose interaction is not already covered by
    the CG description.

    Arguments
    ---------
    atomistic (Topology):
        Fine-grained configuration holding molecule.
    molecule (Molecule):
        Fine-grained molecule instance.
    cg (Topology):
        CG configuration holding cg_molecule; its exclusions must be built.
    cg_molecule (Molecule):
        CG molecule mapped from molecule. Parent bead ids of its beads must
        refer to beads of molecule.

    Returns
    -------
    ExclusionList over atomistic bead ids.
    """
    if not 0 <= molecule.id < len(atomistic.molecules) or (
        atomistic.get_molecule(molecule.id) is not molecule
    ):
        raise ValueError("Molecule {} is not part of the given topology.".format(molecule.name))
    members = set(molecule.beads)
    excl = ExclusionList()
    excl.exclude(molecule.beads)

    parents: Dict[int, List[int]] = {}
    for cg_id in cg_molecule.beads:
        bead = cg.get_bead(cg_id)
        if not bead.parent_beads:
            raise MappingError(
                "CG bead {} (id {}) of molecule {} has no parent beads; "
                "was it created by a mapping?".format(bead.name, bead.id + 1, cg_molecule.name)
            )
        stray = set(bead.parent_beads) - members
        if stray:
            raise MappingError(
                "CG bead {} (id {}) was mapped from atoms {} which are not part of "
                "molecule {} (id {}).".format(
                    bead.name,
                    bead.id + 1,
                    sorted(i + 1 for i in stray),
                    molecule.name,
                    molecule.id + 1,
                )
            )
        parents[cg_id] = list(bead.parent_beads)
        excl.remove(bead.parent_beads)

    for cg_a, cg_b in combinations(cg_molecule.beads, 2):
        if not cg.exclusions.is_excluded(cg_a, cg_b):
            continue
        for a, b in product(parents[cg_a], parents[cg_b]):
            excl.remove_pair(a, b)

    logger.debug(
        "molecule %s (id %d): %d atomistic exclusions after propagation",
        molecule.name,
        molecule.id + 1,
        len(excl),
    )
    return excl
