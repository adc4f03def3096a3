r"""Nematic order of orientation-carrying beads.

For each of the three bead axes a, the order tensor
    Q_a = 1.5 <a a^T> - 0.5 I
is averaged over the selected beads. Its largest eigenvalue is the nematic order
parameter and the matching eigenvector the director.
"""

from fnmatch import fnmatchcase
from typing import Dict, Tuple
import numpy as np
from .topology import Topology

AXES = ("u", "v", "w")


class NematicOrder:
    """Order tensors of the u, v and w axes of a topology's beads."""

    def __init__(self) -> None:
        self.tensors: Dict[str, np.ndarray] = {a: np.zeros((3, 3)) for a in AXES}
        self.n_beads = 0

    def process(self, topology: Topology, name_filter: str = "*") -> None:
        r"""Compute the order tensors for one frame.

        Arguments
        ---------
        topology (Topology):
            Configuration whose beads carry u, v, w (e.g. the output of an
            ellipsoidal mapping).
        name_filter (string):
            Shell-style pattern; only beads whose name matches are used.
        """
        sums = {a: np.zeros((3, 3)) for a in AXES}
        n_beads = 0
        for bead in topology.beads:
            if not fnmatchcase(bead.name, name_filter):
                continue
            axes = [getattr(bead, a) for a in AXES]
            if any(x is None for x in axes):
                continue
            for name, axis in zip(AXES, axes):
                sums[name] += np.outer(axis, axis)
            n_beads += 1
        if n_beads == 0:
            raise ValueError(
                "No beads matching {!r} carry orientation axes.".format(name_filter)
            )
        for name in AXES:
            self.tensors[name] = 1.5 * sums[name] / n_beads - 0.5 * np.eye(3)
        self.n_beads = n_beads

    def eigensystem(self, axis: str) -> Tuple[np.ndarray, np.ndarray]:
        """Eigenvalues (ascending) and eigenvectors (columns) of one tensor."""
        return np.linalg.eigh(self.tensors[axis])

    def order_parameter(self, axis: str) -> float:
        return float(self.eigensystem(axis)[0][-1])

    def director(self, axis: str) -> np.ndarray:
        return self.eigensystem(axis)[1][:, -1]
