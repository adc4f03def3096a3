"""Tests connectivity analysis of bead graphs."""

import pytest
from coarsemap.structure import BeadStructure, break_into_structures
from coarsemap.topology import Interaction, Symmetry, Topology


def test_two_triangles() -> None:
    structure = BeadStructure(
        range(6), [(0, 1), (1, 2), (2, 0), (3, 4), (4, 5), (5, 3)]
    )
    assert not structure.is_single_structure()
    parts = break_into_structures(structure)
    assert len(parts) == 2
    assert parts[0].vertices == [0, 1, 2]
    assert parts[1].vertices == [3, 4, 5]
    assert parts[0].edges == [(0, 1), (0, 2), (1, 2)]
    assert parts[1].edges == [(3, 4), (3, 5), (4, 5)]
    for part in parts:
        assert part.is_single_structure()


def test_connected_structure_is_kept() -> None:
    structure = BeadStructure([10, 20, 30], [(10, 20), (30, 20)])
    assert structure.is_single_structure()
    parts = break_into_structures(structure)
    assert parts == [structure]


def test_isolated_vertices_are_components() -> None:
    structure = BeadStructure([1, 2, 3], [(1, 2)])
    parts = break_into_structures(structure)
    assert [p.vertices for p in parts] == [[1, 2], [3]]
    assert parts[1].edges == []
    assert not BeadStructure().is_single_structure()
    assert break_into_structures(BeadStructure()) == []


def test_edges_need_known_vertices() -> None:
    structure = BeadStructure([0, 1])
    with pytest.raises(ValueError):
        structure.add_edge(0, 2)
    structure.add_edge(1, 0)
    structure.add_edge(0, 1)
    assert structure.edges == [(0, 1)]


def test_substructure_must_belong() -> None:
    structure = BeadStructure([0, 1, 2], [(0, 1)])
    sub = structure.get_substructure([0, 1], [(1, 0)])
    assert sub.edges == [(0, 1)]
    with pytest.raises(ValueError):
        structure.get_substructure([0, 5], [])
    with pytest.raises(ValueError):
        structure.get_substructure([1, 2], [(1, 2)])


def test_from_molecule() -> None:
    top = Topology()
    molecule = top.create_molecule("M")
    other = top.create_molecule("N")
    for i in range(5):
        bead = top.create_bead(Symmetry.SPHERE, "A{}".format(i), "A", 0, 1.0, 0.0)
        (molecule if i < 4 else other).add_bead(bead)
    top.add_bonded_interaction(Interaction("bond", "bond", (0, 1)))
    top.add_bonded_interaction(Interaction("bond", "bond", (2, 3)))
    top.add_bonded_interaction(Interaction("angle", "angle", (0, 1, 2)))
    top.add_bonded_interaction(Interaction("bond", "bond", (3, 4)))
    structure = BeadStructure.from_molecule(top, molecule)
    assert structure.vertices == [0, 1, 2, 3]
    assert structure.edges == [(0, 1), (2, 3)]
    assert len(break_into_structures(structure)) == 2
