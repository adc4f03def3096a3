r"""Boundary conditions used to compute displacements between beads.

A boundary condition is built from a 3x3 box matrix whose columns are the three
lattice vectors. Two variants exist: OpenBox (no periodicity) and TriclinicBox
(periodic, with the lattice in GROMACS' reduced lower-triangular form).
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Type, Union
import numpy as np
from .errors import MappingError


class BoxType(Enum):
    """Kinds of simulation boxes."""

    OPEN = "open"
    TRICLINIC = "triclinic"


class BoundaryCondition(ABC):
    r"""Abstract interface for minimum image calculations.

    Subclasses decide how the displacement between two points is computed. All
    of them hold a copy of the box matrix, which may be all zeros for open
    systems.
    """

    box_type: BoxType

    def __init__(self, box: Union[None, np.ndarray] = None) -> None:
        if box is None:
            box = np.zeros((3, 3))
        box = np.array(box, dtype=float)
        if box.shape != (3, 3):
            raise ValueError("Box must be a 3x3 matrix.")
        self._box = box

    @property
    def box(self) -> np.ndarray:
        """The box matrix; columns are the lattice vectors."""
        return self._box.copy()

    @abstractmethod
    def shortest_connection(self, r_i: np.ndarray, r_j: np.ndarray) -> np.ndarray:
        r"""Return the vector pointing from r_i to r_j.

        Under periodic boundaries this is the minimum image of r_j - r_i.
        """

    def shortest_box_dimension(self) -> float:
        r"""Return the smallest distance between opposite faces of the box.

        The width along lattice vector a is V / |b x c|, and likewise for b and
        c. Half of the smallest width bounds the largest distance that is still
        unambiguous under the minimum image convention. For a skewed box this
        is smaller than the smallest diagonal element.
        """
        a, b, c = self._box[:, 0], self._box[:, 1], self._box[:, 2]
        volume = self.box_volume()
        areas = [np.linalg.norm(np.cross(u, w)) for u, w in ((b, c), (c, a), (a, b))]
        return float(volume / max(areas))

    def box_volume(self) -> float:
        """Volume spanned by the three lattice vectors."""
        return float(abs(np.linalg.det(self._box)))

    def clone(self) -> "BoundaryCondition":
        """Return an independent copy of this boundary condition."""
        return type(self)(self._box)

    def __repr__(self) -> str:
        return "{}(box={!r})".format(type(self).__name__, self._box.tolist())


class OpenBox(BoundaryCondition):
    """Non-periodic system; displacements are plain differences."""

    box_type = BoxType.OPEN

    def shortest_connection(self, r_i: np.ndarray, r_j: np.ndarray) -> np.ndarray:
        return np.asarray(r_j, dtype=float) - np.asarray(r_i, dtype=float)

    def shortest_box_dimension(self) -> float:
        return float("inf")


class TriclinicBox(BoundaryCondition):
    r"""Periodic box with lattice vectors a, b, c in reduced form.

    The method used here is only correct for boxes satisfying
        a_y = a_z = b_z = 0
        a_x > 0, b_y > 0, c_z > 0
        |b_x| < 0.5 a_x, |c_x| < 0.5 a_x, |c_y| < 0.5 b_y
    which is the form GROMACS keeps its boxes in. Nothing here checks this; use
    is_reduced_box (or make_boundary with check_reduced) when the box comes
    from an untrusted source. Cutoffs used with this box should stay below half
    of shortest_box_dimension.
    """

    box_type = BoxType.TRICLINIC

    def shortest_connection(self, r_i: np.ndarray, r_j: np.ndarray) -> np.ndarray:
        box = self._box
        r_tp = np.asarray(r_j, dtype=float) - np.asarray(r_i, dtype=float)
        # remove c, then b, then a; each step only touches the lower components
        r_dp = r_tp - box[:, 2] * np.round(r_tp[2] / box[2, 2])
        r_sp = r_dp - box[:, 1] * np.round(r_dp[1] / box[1, 1])
        return r_sp - box[:, 0] * np.round(r_sp[0] / box[0, 0])


BOUNDARY_CONDITIONS: Dict[BoxType, Type[BoundaryCondition]] = {
    BoxType.OPEN: OpenBox,
    BoxType.TRICLINIC: TriclinicBox,
}


def is_reduced_box(box: np.ndarray) -> bool:
    r"""Check whether a box is in the reduced triclinic form.

    Arguments
    ---------
    box (numpy.ndarray):
        3x3 matrix with lattice vectors as columns.

    Returns
    -------
    True if the lattice is lower triangular with positive diagonal and all
    off-diagonal components smaller than half the matching diagonal element.
    """
    box = np.asarray(box, dtype=float)
    a, b, c = box[:, 0], box[:, 1], box[:, 2]
    if a[1] != 0 or a[2] != 0 or b[2] != 0:
        return False
    if min(a[0], b[1], c[2]) <= 0:
        return False
    return bool(
        abs(b[0]) <= 0.5 * a[0] and abs(c[0]) <= 0.5 * a[0] and abs(c[1]) <= 0.5 * b[1]
    )


def detect_box_type(box: np.ndarray) -> BoxType:
    """Return OPEN for an all-zero box and TRICLINIC for anything else."""
    if not np.any(np.asarray(box, dtype=float)):
        return BoxType.OPEN
    return BoxType.TRICLINIC


def make_boundary(
    box: Union[None, np.ndarray],
    box_type: Union[None, BoxType] = None,
    check_reduced: bool = False,
) -> BoundaryCondition:
    r"""Create the boundary condition for a box.

    Arguments
    ---------
    box (numpy.ndarray or None):
        3x3 box matrix with lattice vectors as columns. None is an open system.
    box_type (BoxType or None):
        Forces a particular variant; if None it is detected from the box.
    check_reduced (boolean):
        If truthy, raise MappingError for periodic boxes that are not in
        reduced form instead of silently producing wrong displacements.

    Returns
    -------
    BoundaryCondition instance.
    """
    if box is None:
        box = np.zeros((3, 3))
    if box_type is None:
        box_type = detect_box_type(box)
    try:
        bc_class = BOUNDARY_CONDITIONS[box_type]
    except KeyError:
        raise ValueError("Unknown box type {!r}.".format(box_type)) from None
    if check_reduced and box_type is not BoxType.OPEN and not is_reduced_box(box):
        raise MappingError(
            "Box {} is not a reduced triclinic box; minimum image displacements "
            "would be wrong.".format(np.asarray(box).tolist())
        )
    return bc_class(box)
