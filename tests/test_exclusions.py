"""Tests exclusion lists and their propagation to atomistic pairs."""

from typing import List, Sequence, Tuple
import pytest
from coarsemap.errors import MappingError
from coarsemap.exclusions import ExclusionList, propagate_exclusions
from coarsemap.topology import Interaction, Molecule, Symmetry, Topology


def make_molecule(n_atoms: int) -> Tuple[Topology, Molecule]:
    top = Topology()
    molecule = top.create_molecule("AA")
    for i in range(n_atoms):
        molecule.add_bead(top.create_bead(Symmetry.SPHERE, "A{}".format(i), "A", 0, 1.0, 0.0))
    return top, molecule


def make_cg(
    parents: Sequence[List[int]], bonds: Sequence[Tuple[int, int]] = ()
) -> Tuple[Topology, Molecule]:
    top = Topology()
    molecule = top.create_molecule("CG")
    for i, ids in enumerate(parents):
        bead = top.create_bead(Symmetry.SPHERE, "B{}".format(i), "B", 0, 0.0, 0.0)
        for parent in ids:
            bead.add_parent_bead(parent)
        molecule.add_bead(bead)
    for i, bond in enumerate(bonds):
        top.add_bonded_interaction(Interaction("bond", "bond", bond, index=i))
    top.rebuild_exclusions()
    return top, molecule


def test_exclusion_list_basics() -> None:
    excl = ExclusionList()
    excl.exclude([0, 1, 2])
    assert len(excl) == 3
    assert excl.is_excluded(0, 2) and excl.is_excluded(2, 0)
    assert (1, 2) in excl and (2, 1) in excl
    assert (1, 1) not in excl
    assert excl.excluded_with(0) == frozenset({1, 2})

    excl.remove_pair(2, 0)
    assert not excl.is_excluded(0, 2)
    assert list(excl) == [(0, 1), (1, 2)]

    excl.exclude_pair(3, 3)
    assert len(excl) == 2
    excl.remove([0, 1, 2])
    assert len(excl) == 0
    assert excl.excluded_with(0) == frozenset()


def test_exclusion_list_text() -> None:
    excl = ExclusionList([(0, 1), (0, 3), (1, 2)])
    assert str(excl) == "1 2 4\n2 3"


def test_chain_in_one_bead_has_no_exclusions() -> None:
    atomistic, molecule = make_molecule(3)
    atomistic.add_bonded_interaction(Interaction("bond", "bond", (0, 1)))
    atomistic.add_bonded_interaction(Interaction("bond", "bond", (1, 2), index=1))
    cg, cg_molecule = make_cg([[0, 1, 2]])
    excl = propagate_exclusions(atomistic, molecule, cg, cg_molecule)
    assert len(excl) == 0


def test_pairs_of_excluded_cg_beads_are_released() -> None:
    atomistic, molecule = make_molecule(2)
    cg, cg_molecule = make_cg([[0], [1]], bonds=[(0, 1)])
    excl = propagate_exclusions(atomistic, molecule, cg, cg_molecule)
    assert not excl.is_excluded(0, 1)
    assert len(excl) == 0


def test_pairs_of_unrelated_cg_beads_stay_excluded() -> None:
    atomistic, molecule = make_molecule(2)
    cg, cg_molecule = make_cg([[0], [1]])
    excl = propagate_exclusions(atomistic, molecule, cg, cg_molecule)
    assert excl.pairs() == [(0, 1)]


def test_three_bead_chain() -> None:
    # atoms 0-1 -> B0, 2-3 -> B1, 4-5 -> B2; bonds B0-B1 and B1-B2
    atomistic, molecule = make_molecule(6)
    cg, cg_molecule = make_cg([[0, 1], [2, 3], [4, 5]], bonds=[(0, 1), (1, 2)])
    excl = propagate_exclusions(atomistic, molecule, cg, cg_molecule)
    # only B0-B2 atom pairs remain
    assert excl.pairs() == [(0, 4), (0, 5), (1, 4), (1, 5)]


def test_missing_or_foreign_parents() -> None:
    atomistic, molecule = make_molecule(2)
    cg, cg_molecule = make_cg([[]])
    with pytest.raises(MappingError, match="no parent beads"):
        propagate_exclusions(atomistic, molecule, cg, cg_molecule)
    cg, cg_molecule = make_cg([[0, 7]])
    with pytest.raises(MappingError, match="not part of"):
        propagate_exclusions(atomistic, molecule, cg, cg_molecule)
    with pytest.raises(ValueError):
        propagate_exclusions(Topology(), molecule, cg, cg_molecule)
