r"""Fill a Topology from an mdtraj trajectory.

Beads are created in atom order, so bead ids equal mdtraj atom indices.
Molecules follow mdtraj's bond graph (Topology.find_molecules). Inside a
molecule made of a single residue beads are looked up by atom name; inside
larger molecules by "<resnr>:<resname>:<atomname>", where resnr counts the
residues of the molecule starting at 1.

Lengths stay in mdtraj's units (nm, ps). Masses come from the elements;
charges are set to zero since mdtraj does not carry them.
"""

from typing import Callable, List, Optional, Sequence
import numpy as np
import mdtraj as md  # type: ignore [import-untyped]
from .topology import Interaction, Symmetry, Topology


def default_molecule_name(residues: Sequence[md.core.topology.Residue]) -> str:
    """Residue name for single-residue molecules, else residue names joined by '-'."""
    return "-".join(r.name for r in residues)


def topology_from_mdtraj(
    traj: md.Trajectory,
    frame: int = 0,
    molecule_name: Optional[Callable[[List[md.core.topology.Residue]], str]] = None,
    topology: Optional[Topology] = None,
) -> Topology:
    r"""Build a Topology from an mdtraj trajectory and load one frame.

    Arguments
    ---------
    traj (mdtraj.Trajectory):
        Source trajectory; only its topology and the selected frame are used.
    frame (integer):
        Frame to load positions, box and time from.
    molecule_name (callable or None):
        Receives the residues of a molecule (in order) and returns the
        molecule name used to find its mapping definition. Defaults to
        default_molecule_name.
    topology (Topology or None):
        Topology to fill; it is cleaned up first. A new one if None.

    Returns
    -------
    The filled Topology.
    """
    if molecule_name is None:
        molecule_name = default_molecule_name
    if topology is None:
        topology = Topology()
    else:
        topology.cleanup()
    md_top = traj.topology

    residue_ids = {}
    for residue in md_top.residues:
        residue_ids[residue.index] = topology.create_residue(residue.name).id
    for atom in md_top.atoms:
        element = atom.element
        mass = 0.0 if element is None or element.mass is None else element.mass
        topology.create_bead(
            Symmetry.SPHERE,
            atom.name,
            element.symbol if element is not None else atom.name,
            residue_ids[atom.residue.index],
            mass,
            0.0,
        )

    groups = sorted(
        (sorted(a.index for a in group) for group in md_top.find_molecules()),
        key=lambda g: g[0],
    )
    for indices in groups:
        atoms = [md_top.atom(i) for i in indices]
        residues: List[md.core.topology.Residue] = []
        for atom in atoms:
            if atom.residue not in residues:
                residues.append(atom.residue)
        molecule = topology.create_molecule(molecule_name(residues))
        local = {r.index: n + 1 for n, r in enumerate(residues)}
        for atom in atoms:
            if len(residues) == 1:
                key = atom.name
            else:
                key = "{}:{}:{}".format(local[atom.residue.index], atom.residue.name, atom.name)
            molecule.add_bead(topology.get_bead(atom.index), key)

    for index, (a, b) in enumerate(md_top.bonds):
        topology.add_bonded_interaction(
            Interaction(
                kind="bond",
                group="bond",
                bead_ids=(a.index, b.index),
                molecule=topology.get_bead(a.index).molecule,
                index=index,
            )
        )
    topology.rebuild_exclusions()
    update_frame(topology, traj, frame)
    return topology


def update_frame(topology: Topology, traj: md.Trajectory, frame: int) -> None:
    """Load positions, box, step and time of one trajectory frame."""
    box = None
    if traj.unitcell_vectors is not None:
        # mdtraj stores lattice vectors as rows
        box = np.asarray(traj.unitcell_vectors[frame], dtype=float).T
    topology.set_frame(
        positions=traj.xyz[frame],
        box=box,
        step=frame,
        time=float(traj.time[frame]),
    )
