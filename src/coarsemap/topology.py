r"""Containers describing a molecular configuration.

A Topology owns every Bead, Molecule and Residue of a system. Objects refer to
each other by index into the owning Topology (a bead knows the index of its
molecule, a molecule keeps the ids of its beads), so nothing is invalidated when
the containers grow.

Per-frame state (positions, velocities, forces, box, step and time) lives on the
same objects and is overwritten as trajectories are read or maps are applied.
"""

from enum import IntEnum
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Union
import numpy as np
from .boundary import BoundaryCondition, make_boundary
from .exclusions import ExclusionList

ArrayLike = Union[np.ndarray, Iterable[float]]


class Symmetry(IntEnum):
    """Geometric order of a bead.

    The value is the number of axes the bead carries: a sphere only has a
    position, an ellipsoid has three orientation axes u, v, w.
    """

    SPHERE = 1
    ELLIPSOID = 3


@dataclass
class Residue:
    """Residue a bead was read from."""

    id: int
    name: str


def _as_vector(value: Union[None, ArrayLike]) -> Optional[np.ndarray]:
    if value is None:
        return None
    vec = np.array(value, dtype=float)
    if vec.shape != (3,):
        raise ValueError("Expected a vector of length 3, got shape {}.".format(vec.shape))
    return vec


class Bead:
    r"""A particle: an atom in the fine-grained system or a CG site.

    Position, velocity and force are each optional; they are None until set.
    parent_beads lists the ids of the beads a CG bead was mapped from, in the
    order the mapping lists them.
    """

    def __init__(
        self,
        id: int,
        name: str,
        type: str,
        residue: int = 0,
        mass: float = 0.0,
        charge: float = 0.0,
        symmetry: Symmetry = Symmetry.SPHERE,
    ) -> None:
        if mass < 0:
            raise ValueError("Bead {} has negative mass {}.".format(name, mass))
        self.id = id
        self.name = name
        self.type = type
        self.residue = residue
        self.mass = float(mass)
        self.charge = float(charge)
        self.symmetry = Symmetry(symmetry)
        self.molecule: Optional[int] = None
        self.parent_beads: List[int] = []
        self._pos: Optional[np.ndarray] = None
        self._vel: Optional[np.ndarray] = None
        self._force: Optional[np.ndarray] = None
        self._u: Optional[np.ndarray] = None
        self._v: Optional[np.ndarray] = None
        self._w: Optional[np.ndarray] = None

    @property
    def pos(self) -> Optional[np.ndarray]:
        return self._pos

    @pos.setter
    def pos(self, value: Union[None, ArrayLike]) -> None:
        self._pos = _as_vector(value)

    @property
    def vel(self) -> Optional[np.ndarray]:
        return self._vel

    @vel.setter
    def vel(self, value: Union[None, ArrayLike]) -> None:
        self._vel = _as_vector(value)

    @property
    def force(self) -> Optional[np.ndarray]:
        return self._force

    @force.setter
    def force(self, value: Union[None, ArrayLike]) -> None:
        self._force = _as_vector(value)

    @property
    def u(self) -> Optional[np.ndarray]:
        """Primary orientation axis (ellipsoids only)."""
        return self._u

    @u.setter
    def u(self, value: Union[None, ArrayLike]) -> None:
        self._u = _as_vector(value)

    @property
    def v(self) -> Optional[np.ndarray]:
        return self._v

    @v.setter
    def v(self, value: Union[None, ArrayLike]) -> None:
        self._v = _as_vector(value)

    @property
    def w(self) -> Optional[np.ndarray]:
        return self._w

    @w.setter
    def w(self, value: Union[None, ArrayLike]) -> None:
        self._w = _as_vector(value)

    @property
    def has_pos(self) -> bool:
        return self._pos is not None

    @property
    def has_vel(self) -> bool:
        return self._vel is not None

    @property
    def has_force(self) -> bool:
        return self._force is not None

    def clear_parent_beads(self) -> None:
        self.parent_beads.clear()

    def add_parent_bead(self, bead_id: int) -> None:
        self.parent_beads.append(bead_id)

    def __repr__(self) -> str:
        return "Bead(id={}, name={!r}, type={!r}, molecule={})".format(
            self.id, self.name, self.type, self.molecule
        )


class Molecule:
    r"""Ordered group of beads sharing a name.

    The name is what CGEngine uses to find the mapping definition of the
    molecule. Beads are looked up by a per-molecule name, which by default is
    the bead name; readers may register a more specific key (for example
    "<resnr>:<resname>:<atomname>") when names repeat inside one molecule.
    """

    def __init__(self, id: int, name: str) -> None:
        self.id = id
        self.name = name
        self.beads: List[int] = []
        self._by_name: Dict[str, int] = {}

    def add_bead(self, bead: Bead, name: Optional[str] = None) -> None:
        """Add bead to the molecule and point the bead back at it."""
        if name is None:
            name = bead.name
        self.beads.append(bead.id)
        self._by_name[name] = bead.id
        bead.molecule = self.id

    def bead_id(self, name: str) -> int:
        """Return the id of the bead registered under name.

        Raises KeyError if the molecule has no such bead.
        """
        return self._by_name[name]

    def has_bead(self, name: str) -> bool:
        return name in self._by_name

    @property
    def bead_names(self) -> List[str]:
        return list(self._by_name)

    def __len__(self) -> int:
        return len(self.beads)

    def __repr__(self) -> str:
        return "Molecule(id={}, name={!r}, n_beads={})".format(
            self.id, self.name, len(self.beads)
        )


# number of beads each kind of bonded interaction connects
INTERACTION_SIZES: Dict[str, int] = {"bond": 2, "angle": 3, "dihedral": 4}


@dataclass
class Interaction:
    r"""A bonded interaction between beads.

    kind is one of "bond", "angle" or "dihedral"; group is the user given name
    that collects interactions sharing a potential. index counts interactions
    within a group.
    """

    kind: str
    group: str
    bead_ids: Tuple[int, ...]
    molecule: Optional[int] = None
    index: int = 0

    def __post_init__(self) -> None:
        if self.kind not in INTERACTION_SIZES:
            raise ValueError("Unknown interaction kind {!r}.".format(self.kind))
        self.bead_ids = tuple(int(i) for i in self.bead_ids)
        if len(self.bead_ids) != INTERACTION_SIZES[self.kind]:
            raise ValueError(
                "A {} needs {} beads, got {}.".format(
                    self.kind, INTERACTION_SIZES[self.kind], len(self.bead_ids)
                )
            )

    @property
    def name(self) -> str:
        return "{}:{}".format(self.group, self.index)


@dataclass(eq=False)
class Topology:
    r"""Complete description of one configuration.

    Beads, molecules and residues are stored in lists and identified by their
    position in those lists. The box is a 3x3 matrix whose columns are the
    lattice vectors; an all-zero box describes an open system.
    """

    beads: List[Bead] = field(default_factory=list)
    molecules: List[Molecule] = field(default_factory=list)
    residues: List[Residue] = field(default_factory=list)
    interactions: List[Interaction] = field(default_factory=list)
    bead_types: Dict[str, int] = field(default_factory=dict)
    exclusions: ExclusionList = field(default_factory=ExclusionList)
    step: int = 0
    time: float = 0.0
    _box: np.ndarray = field(default_factory=lambda: np.zeros((3, 3)))

    @property
    def box(self) -> np.ndarray:
        return self._box.copy()

    @box.setter
    def box(self, value: ArrayLike) -> None:
        box = np.array(value, dtype=float)
        if box.shape != (3, 3):
            raise ValueError("Box must be a 3x3 matrix.")
        self._box = box

    def box_volume(self) -> float:
        return float(abs(np.linalg.det(self._box)))

    def boundary(self, check_reduced: bool = False) -> BoundaryCondition:
        """Boundary condition matching the current box."""
        return make_boundary(self._box, check_reduced=check_reduced)

    @property
    def n_beads(self) -> int:
        return len(self.beads)

    def register_bead_type(self, name: str) -> int:
        """Register a bead type name and return its index."""
        if name not in self.bead_types:
            self.bead_types[name] = len(self.bead_types)
        return self.bead_types[name]

    def bead_type_exists(self, name: str) -> bool:
        return name in self.bead_types

    def create_residue(self, name: str, id: Optional[int] = None) -> Residue:
        if id is None:
            id = len(self.residues)
        residue = Residue(id=id, name=name)
        self.residues.append(residue)
        return residue

    def create_bead(
        self,
        symmetry: Symmetry,
        name: str,
        type: str,
        residue: int,
        mass: float,
        charge: float,
    ) -> Bead:
        """Create a bead owned by this topology; its id is its list index."""
        self.register_bead_type(type)
        bead = Bead(
            id=len(self.beads),
            name=name,
            type=type,
            residue=residue,
            mass=mass,
            charge=charge,
            symmetry=symmetry,
        )
        self.beads.append(bead)
        return bead

    def create_molecule(self, name: str) -> Molecule:
        molecule = Molecule(id=len(self.molecules), name=name)
        self.molecules.append(molecule)
        return molecule

    def get_bead(self, bead_id: int) -> Bead:
        return self.beads[bead_id]

    def get_molecule(self, molecule_id: int) -> Molecule:
        return self.molecules[molecule_id]

    def molecule_beads(self, molecule: Molecule) -> List[Bead]:
        return [self.beads[i] for i in molecule.beads]

    def add_bonded_interaction(self, interaction: Interaction) -> None:
        for bead_id in interaction.bead_ids:
            if not 0 <= bead_id < len(self.beads):
                raise IndexError(
                    "Interaction {} refers to unknown bead {}.".format(
                        interaction.name, bead_id
                    )
                )
        self.interactions.append(interaction)

    def rebuild_exclusions(self) -> None:
        """Recreate exclusions from the bonded interactions."""
        self.exclusions.create_exclusions(self)

    def set_frame(
        self,
        positions: Union[None, np.ndarray] = None,
        velocities: Union[None, np.ndarray] = None,
        forces: Union[None, np.ndarray] = None,
        box: Union[None, np.ndarray] = None,
        step: Optional[int] = None,
        time: Optional[float] = None,
    ) -> None:
        r"""Overwrite per-frame state from arrays.

        Arguments
        ---------
        positions, velocities, forces (numpy.ndarray or None):
            Arrays of shape (n_beads, 3). None leaves the attribute untouched.
        box (numpy.ndarray or None):
            New 3x3 box.
        step, time:
            New step counter and simulation time.
        """
        for attr, values in (("pos", positions), ("vel", velocities), ("force", forces)):
            if values is None:
                continue
            values = np.asarray(values, dtype=float)
            if values.shape != (len(self.beads), 3):
                raise ValueError(
                    "Expected {} of shape {}, got {}.".format(
                        attr, (len(self.beads), 3), values.shape
                    )
                )
            for bead, value in zip(self.beads, values):
                setattr(bead, attr, value)
        if box is not None:
            self.box = box
        if step is not None:
            self.step = step
        if time is not None:
            self.time = time

    def _stack(self, attr: str) -> np.ndarray:
        values = [getattr(bead, attr) for bead in self.beads]
        if any(v is None for v in values):
            raise ValueError("Not every bead has {} set.".format(attr))
        return np.array(values, dtype=float).reshape(len(self.beads), 3)

    def positions(self) -> np.ndarray:
        return self._stack("pos")

    def velocities(self) -> np.ndarray:
        return self._stack("vel")

    def forces(self) -> np.ndarray:
        return self._stack("force")

    def cleanup(self) -> None:
        """Remove all content so the topology can be reused."""
        self.beads.clear()
        self.molecules.clear()
        self.residues.clear()
        self.interactions.clear()
        self.bead_types.clear()
        self.exclusions.clear()
        self.step = 0
        self.time = 0.0
        self._box = np.zeros((3, 3))
