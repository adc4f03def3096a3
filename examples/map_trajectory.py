"""Map every frame of an atomistic trajectory to the CG representation.

Example usage:

    python map_trajectory.py traj.xtc --top conf.pdb --cg "water.yaml;meoh.yaml" \
        --out cg.npz

Molecule names are residue names joined by '-' (see
coarsemap.mdtraj_io.default_molecule_name), so a water definition would use
"ident: HOH" for a PDB with HOH residues. The output npz holds the CG positions
(n_frames, n_cg_beads, 3), boxes (n_frames, 3, 3) and bead names.
"""

from argparse import ArgumentParser
import logging
import sys
import numpy as np
import mdtraj as md  # type: ignore [import-untyped]
from coarsemap.engine import CGEngine
from coarsemap.mdtraj_io import topology_from_mdtraj, update_frame
from coarsemap.topology import Topology

logger = logging.getLogger(__name__)


def main() -> None:
    parser = ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("trajectory", help="trajectory file readable by mdtraj")
    parser.add_argument("--top", default=None, help="topology file (pdb, gro, ...)")
    parser.add_argument("--cg", required=True, help="definition files separated by ';'")
    parser.add_argument("--out", default="cg.npz", help="output npz file")
    parser.add_argument(
        "--ignore", action="append", default=[], help="molecule name pattern to skip"
    )
    parser.add_argument("--check-box", action="store_true", help="reject non-reduced boxes")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO, stream=sys.stdout
    )

    if args.top is None:
        traj = md.load(args.trajectory)
    else:
        traj = md.load(args.trajectory, top=args.top)
    logger.info("read %d frames of %d atoms", traj.n_frames, traj.n_atoms)

    engine = CGEngine()
    engine.load_molecule_type(args.cg)
    for pattern in args.ignore:
        engine.add_ignore(pattern)

    atomistic = topology_from_mdtraj(traj, frame=0)
    cg = Topology()
    topology_map = engine.create_cg_topology(atomistic, cg, check_reduced=args.check_box)

    positions = np.zeros((traj.n_frames, cg.n_beads, 3))
    boxes = np.zeros((traj.n_frames, 3, 3))
    for frame in range(traj.n_frames):
        update_frame(atomistic, traj, frame)
        topology_map.apply()
        positions[frame] = cg.positions()
        boxes[frame] = cg.box

    np.savez(
        args.out,
        positions=positions,
        boxes=boxes,
        names=np.array([b.name for b in cg.beads]),
        types=np.array([b.type for b in cg.beads]),
    )
    logger.info("wrote %d CG beads per frame to %s", cg.n_beads, args.out)


if __name__ == "__main__":
    main()
