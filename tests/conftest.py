"""Shared builders for small in-memory configurations."""

from typing import Callable, Sequence
import numpy as np
import pytest
from coarsemap.definition import CGMoleculeDef
from coarsemap.topology import Symmetry, Topology

# name, mass, offset from the oxygen (nm)
WATER_ATOMS = (
    ("OW", 15.999, (0.0, 0.0, 0.0)),
    ("HW1", 1.008, (0.1, 0.0, 0.0)),
    ("HW2", 1.008, (-0.033, 0.094, 0.0)),
)

WATER_DEF = {
    "ident": "SOL",
    "topology": {
        "cg_beads": [{"name": "W", "type": "W", "mapping": "A", "beads": "OW HW1 HW2"}]
    },
    "maps": [{"name": "A", "weights": [15.999, 1.008, 1.008]}],
}


def add_water(topology: Topology, origin: Sequence[float], name: str = "SOL") -> None:
    """Append one water molecule with its oxygen at origin."""
    molecule = topology.create_molecule(name)
    residue = topology.create_residue(name)
    for atom, mass, offset in WATER_ATOMS:
        bead = topology.create_bead(Symmetry.SPHERE, atom, atom[0], residue.id, mass, 0.0)
        bead.pos = np.asarray(origin, dtype=float) + np.asarray(offset)
        molecule.add_bead(bead)


@pytest.fixture
def water_box() -> Callable[..., Topology]:
    r"""Factory for boxes of water.

    Arguments of the returned callable are the oxygen positions and the box
    edge length (0 for an open system).
    """

    def make(origins: Sequence[Sequence[float]], edge: float = 3.0) -> Topology:
        topology = Topology()
        topology.box = edge * np.eye(3)
        for origin in origins:
            add_water(topology, origin)
        return topology

    return make


@pytest.fixture
def water_def() -> CGMoleculeDef:
    return CGMoleculeDef.from_dict(WATER_DEF)
