"""Tests loading molecule definitions and mapping whole topologies."""

import logging
from pathlib import Path
from typing import Callable
import numpy as np
import pytest
import yaml
from conftest import WATER_DEF
from coarsemap.definition import CGMoleculeDef
from coarsemap.engine import CGEngine
from coarsemap.errors import MappingError
from coarsemap.topology import Symmetry, Topology

TRIMER_DEF = """\
ident: TRI
name: TRICG
topology:
  cg_beads:
    - name: A
      type: TA
      mapping: single
      beads: C1
    - name: B
      type: TB
      mapping: single
      beads: C2
    - name: E
      type: TE
      mapping: ellipsoid
      beads: [C1, C2, C3]
      symmetry: 3
  cg_bonded:
    bond:
      - name: ab
        beads: A B
    angle:
      - name: abe
        beads: A B E
maps:
  - name: single
    weights: 1
  - name: ellipsoid
    weights: 1 1 2
    d: 0 0 1
"""


def add_trimer(topology: Topology, origin: np.ndarray) -> None:
    molecule = topology.create_molecule("TRI")
    for i, offset in enumerate(([0, 0, 0], [0.1, 0, 0], [0.1, 0.1, 0])):
        bead = topology.create_bead(Symmetry.SPHERE, "C{}".format(i + 1), "C", 0, 12.0, 0.0)
        bead.pos = origin + np.asarray(offset, dtype=float)
        bead.force = [0.0, 0.0, float(i + 1)]
        molecule.add_bead(bead)


def write_defs(tmp_path: Path, water: dict) -> str:
    (tmp_path / "tri.yaml").write_text(TRIMER_DEF)
    (tmp_path / "water.yaml").write_text(yaml.safe_dump(water))
    return "{} ; {}".format(tmp_path / "tri.yaml", tmp_path / "water.yaml")


def test_load_several_files(tmp_path: Path) -> None:
    engine = CGEngine()
    engine.load_molecule_type(write_defs(tmp_path, WATER_DEF))
    assert engine.idents == ["SOL", "TRI"]
    tri = engine.get_molecule_def("TRI")
    assert tri is not None and tri.name == "TRICG"
    assert tri.beads[2].symmetry is Symmetry.ELLIPSOID
    assert tri.maps["ellipsoid"].d == [0.0, 0.0, 1.0]
    assert [g.beads for g in tri.bonded] == [[["A", "B"]], [["A", "B", "E"]]]
    assert engine.get_molecule_def("XYZ") is None


def test_map_mixed_topology(
    tmp_path: Path, water_box: Callable[..., Topology], caplog: pytest.LogCaptureFixture
) -> None:
    engine = CGEngine()
    engine.load_molecule_type(write_defs(tmp_path, WATER_DEF))

    aa = water_box([[0.5, 0.5, 0.5], [1.5, 1.5, 1.5]], edge=4.0)
    add_trimer(aa, np.array([2.5, 2.5, 2.5]))
    stranger = aa.create_molecule("UNK")
    stranger.add_bead(aa.create_bead(Symmetry.SPHERE, "X", "X", 0, 1.0, 0.0))
    aa.step = 12
    aa.time = 2.5

    cg = Topology()
    with caplog.at_level(logging.WARNING, logger="coarsemap.engine"):
        topology_map = engine.create_cg_topology(aa, cg)
    assert 'unknown molecule "UNK"' in caplog.text

    assert len(topology_map) == 3
    assert [m.name for m in cg.molecules] == ["SOL", "SOL", "TRICG"]
    assert [b.name for b in cg.beads] == ["W", "W", "A", "B", "E"]
    # exclusions come from the declared bonded topology only
    assert cg.exclusions.pairs() == [(2, 3), (2, 4), (3, 4)]

    topology_map.apply()
    assert cg.step == 12 and cg.time == 2.5
    assert np.allclose(cg.box, 4.0 * np.eye(3))
    water_mass = 15.999 + 1.008 + 1.008
    assert np.isclose(cg.beads[0].mass, water_mass)
    assert np.isclose(cg.beads[4].mass, 36.0)
    assert np.allclose(cg.beads[2].pos, [2.5, 2.5, 2.5])
    # all of the force of the ellipsoid comes from C3: w=1/2, d=1, so f=2*3
    assert np.allclose(cg.beads[4].force, [0.0, 0.0, 6.0])
    assert cg.beads[4].u is not None
    # waters have no forces
    assert not cg.beads[0].has_force
    assert cg.beads[4].parent_beads == [6, 7, 8]


def test_ignored_molecules_are_skipped_quietly(
    water_box: Callable[..., Topology], water_def: CGMoleculeDef, caplog: pytest.LogCaptureFixture
) -> None:
    aa = water_box([[0.5, 0.5, 0.5]])
    ion = aa.create_molecule("NA+")
    ion.add_bead(aa.create_bead(Symmetry.SPHERE, "NA", "NA", 0, 22.99, 1.0))
    engine = CGEngine([water_def])
    engine.add_ignore("NA*")
    assert engine.is_ignored("NA+")
    assert not engine.is_ignored("SOL")
    cg = Topology()
    with caplog.at_level(logging.WARNING):
        topology_map = engine.create_cg_topology(aa, cg)
    assert "unknown molecule" not in caplog.text
    assert len(topology_map) == 1
    assert cg.n_beads == 1


def test_apply_follows_frames(
    water_box: Callable[..., Topology], water_def: CGMoleculeDef
) -> None:
    aa = water_box([[0.5, 0.5, 0.5]], edge=3.0)
    cg = Topology()
    topology_map = CGEngine([water_def]).create_cg_topology(aa, cg)
    topology_map.apply()
    before = cg.beads[0].pos.copy()
    topology_map.apply()
    assert np.array_equal(cg.beads[0].pos, before)

    aa.set_frame(positions=aa.positions() + 1.0, step=1, time=0.002)
    topology_map.apply()
    assert np.allclose(cg.beads[0].pos, before + 1.0)
    assert cg.step == 1


def test_water_split_across_box_boundary(
    water_box: Callable[..., Topology], water_def: CGMoleculeDef
) -> None:
    # hydrogens sit on the other side of the box
    aa = water_box([[2.97, 1.0, 1.0]], edge=3.0)
    aa.beads[1].pos = aa.beads[1].pos - [3.0, 0.0, 0.0]
    cg = Topology()
    CGEngine([water_def]).create_cg_topology(aa, cg).apply()
    assert np.abs(cg.beads[0].pos[0] - 2.97) < 0.1


def test_too_small_box_fails(
    water_box: Callable[..., Topology], water_def: CGMoleculeDef
) -> None:
    # flat box: the O-H distance exceeds half the thinnest extent
    aa = water_box([[0.5, 0.5, 0.05]])
    aa.box = np.diag([3.0, 3.0, 0.1])
    cg = Topology()
    topology_map = CGEngine([water_def]).create_cg_topology(aa, cg)
    with pytest.raises(MappingError, match="half the box"):
        topology_map.apply()


def test_definition_errors(water_box: Callable[..., Topology]) -> None:
    with pytest.raises(MappingError, match="lacks"):
        CGMoleculeDef.from_dict({"ident": "X"})
    with pytest.raises(MappingError, match="unknown map"):
        CGMoleculeDef.from_dict(dict(WATER_DEF, maps=[{"name": "B", "weights": "1 1 1"}]))
    bonded = yaml.safe_load(TRIMER_DEF)
    bonded["topology"]["cg_bonded"]["bond"][0]["beads"] = "A B E"
    with pytest.raises(MappingError, match="not a multiple"):
        CGMoleculeDef.from_dict(bonded)
    bonded["topology"]["cg_bonded"]["bond"][0]["beads"] = "A Q"
    with pytest.raises(MappingError, match="unknown beads"):
        CGMoleculeDef.from_dict(bonded)
    with pytest.raises(MappingError, match="Could not read"):
        CGMoleculeDef.from_dict(dict(WATER_DEF, maps=[{"name": "A", "weights": "1 x 1"}]))

    # mismatches only show up against a real molecule
    short = CGMoleculeDef.from_dict(dict(WATER_DEF, maps=[{"name": "A", "weights": "1 1"}]))
    with pytest.raises(MappingError, match="do not match"):
        CGEngine([short]).create_cg_topology(water_box([[0.5, 0.5, 0.5]]), Topology())
    renamed = CGMoleculeDef.from_dict(
        dict(
            WATER_DEF,
            topology={
                "cg_beads": [{"name": "W", "type": "W", "mapping": "A", "beads": "O H1 H2"}]
            },
        )
    )
    with pytest.raises(MappingError, match="does not exist"):
        CGEngine([renamed]).create_cg_topology(water_box([[0.5, 0.5, 0.5]]), Topology())


def test_disconnected_definition_warns(caplog: pytest.LogCaptureFixture) -> None:
    conf = yaml.safe_load(TRIMER_DEF)
    conf["topology"]["cg_bonded"] = {"bond": [{"name": "ab", "beads": "A B"}]}
    with caplog.at_level(logging.WARNING, logger="coarsemap.engine"):
        CGEngine([CGMoleculeDef.from_dict(conf)])
    assert "2 disconnected groups" in caplog.text


def test_single_atom_definition_with_bare_numbers(tmp_path: Path) -> None:
    (tmp_path / "ion.yaml").write_text(
        "ident: NA\n"
        "topology:\n"
        "  cg_beads:\n"
        "    - name: ION\n"
        "      type: ION\n"
        "      mapping: A\n"
        "      beads: 1\n"
        "maps:\n"
        "  - name: A\n"
        "    weights: 1\n"
        "    d: 1\n"
    )
    definition = CGMoleculeDef.load(tmp_path / "ion.yaml")
    assert definition.beads[0].beads == ["1"]
    assert definition.maps["A"].weights == [1.0]
    assert definition.maps["A"].d == [1.0]

    aa = Topology()
    ion = aa.create_molecule("NA")
    bead = aa.create_bead(Symmetry.SPHERE, "1", "NA", 0, 22.99, 1.0)
    bead.pos = [0.2, 0.3, 0.4]
    bead.force = [1.0, 2.0, 3.0]
    ion.add_bead(bead)
    cg = Topology()
    CGEngine([definition]).create_cg_topology(aa, cg).apply()
    assert np.allclose(cg.beads[0].pos, [0.2, 0.3, 0.4])
    assert np.allclose(cg.beads[0].force, [1.0, 2.0, 3.0])
    assert np.isclose(cg.beads[0].mass, 22.99)
