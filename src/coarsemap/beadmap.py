r"""Maps turning groups of fine-grained beads into single CG beads.

A BeadMap owns the list of (source bead, position weight, force weight) entries
that feed one output bead. Positions and velocities are combined with the
position weights. Forces are combined with force weights, which are derived
from a second set of coefficients (the redistribution coefficients, "d") as
d_i / w_i. Both sets are normalized to sum to one independently, so
    sum_i w_i = 1 and sum_i d_i = 1.
A source with zero position weight may therefore not receive a nonzero
redistribution coefficient.

Maps are wired once (which bead feeds which) and then re-applied every frame;
the values are always read from the live beads of the source topology.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence, Type, Union
import numpy as np
from .boundary import BoundaryCondition, BoxType
from .errors import MappingError
from .topology import Bead, Molecule, Symmetry, Topology


class MapElement(NamedTuple):
    """One source bead of a BeadMap."""

    bead_id: int
    weight: float
    force_weight: float


def normalize(values: Sequence[float], label: str = "weights") -> np.ndarray:
    r"""Scale values so they sum to one.

    Raises MappingError when the values sum to zero.
    """
    values = np.asarray(values, dtype=float)
    total = values.sum()
    if total == 0:
        raise MappingError("The {} sum to zero and cannot be normalized.".format(label))
    return values / total


def force_weights(
    weights: Sequence[float], d: Sequence[float], map_name: str = ""
) -> np.ndarray:
    r"""Combine normalized position weights and redistribution coefficients.

    Arguments
    ---------
    weights (sequence of floats):
        Normalized position weights w_i.
    d (sequence of floats):
        Normalized redistribution coefficients d_i.
    map_name (string):
        Used in error messages.

    Returns
    -------
    numpy.ndarray of force weights d_i / w_i, which is 0 where w_i is 0.
    """
    weights = np.asarray(weights, dtype=float)
    d = np.asarray(d, dtype=float)
    bad = (weights == 0) & (d != 0)
    if np.any(bad):
        raise MappingError(
            "A d coefficient is nonzero while the weight is zero in mapping "
            "{} (positions {}).".format(map_name, np.nonzero(bad)[0].tolist())
        )
    out = np.zeros_like(weights)
    nonzero = weights != 0
    out[nonzero] = d[nonzero] / weights[nonzero]
    return out


class BeadMap(ABC):
    r"""Abstract rule producing one output bead from several source beads.

    Instances hold the source and target topologies and refer to beads by id;
    nothing is copied out of the topologies at construction time.
    """

    # smallest number of distinct source beads the variant can work with
    min_beads = 1

    def __init__(
        self,
        source: Topology,
        target: Topology,
        out_id: int,
        elements: Sequence[MapElement],
    ) -> None:
        r"""
        Arguments
        ---------
        source (Topology):
            Topology the source beads live in.
        target (Topology):
            Topology the output bead lives in.
        out_id (integer):
            Id of the output bead in target.
        elements (sequence of MapElement):
            Source beads with their normalized position and force weights. The
            first element is the reference used to unwrap periodic images.
        """
        if not elements:
            raise MappingError("Cannot map to bead {}: no source beads.".format(out_id))
        n_distinct = len({e.bead_id for e in elements})
        if n_distinct < self.min_beads:
            raise MappingError(
                "{} for bead {} needs at least {} distinct source beads, got {}.".format(
                    type(self).__name__,
                    target.get_bead(out_id).name,
                    self.min_beads,
                    n_distinct,
                )
            )
        self.source = source
        self.target = target
        self.out_id = out_id
        self.elements: List[MapElement] = list(elements)
        out = self.out_bead
        out.clear_parent_beads()
        for element in self.elements:
            out.add_parent_bead(element.bead_id)

    @classmethod
    def from_names(
        cls,
        source: Topology,
        molecule: Molecule,
        target: Topology,
        out_id: int,
        bead_names: Sequence[str],
        weights: Sequence[float],
        d: Union[None, Sequence[float]] = None,
        map_name: str = "",
    ) -> "BeadMap":
        r"""Build a map from bead names of a source molecule.

        Arguments
        ---------
        source (Topology):
            Topology holding molecule.
        molecule (Molecule):
            Source molecule; bead_names are looked up in it.
        target (Topology):
            Topology holding the output bead.
        out_id (integer):
            Id of the output bead.
        bead_names (sequence of strings):
            Names of the source beads, in mapping order.
        weights (sequence of floats):
            Position weights, one per name. Normalized here.
        d (sequence of floats or None):
            Force redistribution coefficients, one per name. Normalized here.
            If None, the (normalized) position weights are used.
        map_name (string):
            Name of the mapping, used in error messages.

        Returns
        -------
        Instance of cls.
        """
        out_name = target.get_bead(out_id).name
        if len(bead_names) != len(weights):
            raise MappingError(
                "number of subbeads in {} and number of weights in map {} do not "
                "match ({} vs {})".format(out_name, map_name, len(bead_names), len(weights))
            )
        weights = normalize(weights, "weights of map {}".format(map_name))
        if d is None:
            d = weights.copy()
        else:
            if len(bead_names) != len(d):
                raise MappingError(
                    "number of subbeads in {} and number of d-coefficients in map {} "
                    "do not match ({} vs {})".format(out_name, map_name, len(bead_names), len(d))
                )
            d = normalize(d, "d coefficients of map {}".format(map_name))
        fweights = force_weights(weights, d, map_name)

        elements = []
        for name, w, fw in zip(bead_names, weights, fweights):
            try:
                bead_id = molecule.bead_id(name)
            except KeyError:
                raise MappingError(
                    "mapping error: bead {} does not exist in molecule {} (id {})".format(
                        name, molecule.name, molecule.id + 1
                    )
                ) from None
            elements.append(MapElement(bead_id, float(w), float(fw)))
        return cls(source, target, out_id, elements)

    @property
    def out_bead(self) -> Bead:
        return self.target.get_bead(self.out_id)

    @property
    def weights(self) -> np.ndarray:
        return np.array([e.weight for e in self.elements])

    @property
    def force_weights(self) -> np.ndarray:
        return np.array([e.force_weight for e in self.elements])

    @property
    def bead_ids(self) -> List[int]:
        return [e.bead_id for e in self.elements]

    def _aggregate(self, bc: BoundaryCondition) -> List[np.ndarray]:
        r"""Set mass, position, velocity and force of the output bead.

        Returns the unwrapped positions of the source beads (None entries for
        beads without a position) so subclasses can reuse them.
        """
        out = self.out_bead
        out.clear_parent_beads()
        beads = [self.source.get_bead(e.bead_id) for e in self.elements]
        first = beads[0]
        r0 = first.pos if first.has_pos else np.zeros(3)

        mass = 0.0
        cg = np.zeros(3)
        has_pos = False
        far_bead = first
        max_dist = 0.0
        unwrapped = []
        for element, bead in zip(self.elements, beads):
            out.add_parent_bead(bead.id)
            mass += bead.mass
            if not bead.has_pos:
                unwrapped.append(None)
                continue
            r = bc.shortest_connection(r0, bead.pos)
            dist = np.linalg.norm(r)
            if dist > max_dist:
                max_dist = dist
                far_bead = bead
            unwrapped.append(r0 + r)
            cg += element.weight * (r0 + r)
            has_pos = True

        if bc.box_type is not BoxType.OPEN:
            limit = 0.5 * bc.shortest_box_dimension()
            if max_dist > limit:
                raise MappingError(
                    "coarse-grained bead is bigger than half the box (atoms {} (id {}) "
                    "at {}, {} (id {}) at {}, molecule {})".format(
                        first.name,
                        first.id + 1,
                        r0.tolist(),
                        far_bead.name,
                        far_bead.id + 1,
                        far_bead.pos.tolist(),
                        "?" if far_bead.molecule is None else far_bead.molecule + 1,
                    )
                )

        vel = np.zeros(3)
        force = np.zeros(3)
        has_vel = has_force = False
        for element, bead in zip(self.elements, beads):
            if bead.has_vel:
                vel += element.weight * bead.vel
                has_vel = True
            if bead.has_force:
                force += element.force_weight * bead.force
                has_force = True

        out.mass = mass
        out.pos = cg if has_pos else None
        out.vel = vel if has_vel else None
        out.force = force if has_force else None
        return unwrapped

    @abstractmethod
    def apply(self, bc: BoundaryCondition) -> None:
        """Recompute the output bead from the current source beads."""

    def __len__(self) -> int:
        return len(self.elements)


class SphereMap(BeadMap):
    """Weighted average onto a point-like bead."""

    def apply(self, bc: BoundaryCondition) -> None:
        self._aggregate(bc)


class EllipsoidMap(BeadMap):
    r"""Weighted average onto a bead carrying an orientation frame.

    Besides the sphere quantities the output bead gets three unit axes:
        u: eigenvector of the smallest eigenvalue of the gyration tensor of
           the positively weighted sources,
        v: direction from the first to the second listed source,
        w: u x v,
    with the sign of u chosen so that it points along (v x w') where w' is
    the direction from the first to the third listed source. All positions
    are taken after unwrapping around the first source.
    """

    min_beads = 3

    def apply(self, bc: BoundaryCondition) -> None:
        unwrapped = self._aggregate(bc)
        out = self.out_bead
        contributing = [
            r for r, e in zip(unwrapped, self.elements) if e.weight > 0 and r is not None
        ]
        if not contributing or any(r is None for r in unwrapped[:3]):
            out.u = np.array([1.0, 0.0, 0.0])
            out.v = np.array([0.0, 1.0, 0.0])
            out.w = np.array([0.0, 0.0, 1.0])
            return

        contributing = np.array(contributing)
        centered = contributing - contributing.mean(axis=0)
        gyration = centered.T @ centered / len(contributing)
        _, eigvecs = np.linalg.eigh(gyration)
        u = eigvecs[:, 0]

        v = _unit(unwrapped[1] - unwrapped[0])
        w = _unit(unwrapped[2] - unwrapped[0])
        if np.dot(np.cross(v, w), u) < 0:
            u = -u
        out.u = u
        out.v = v
        out.w = _unit(np.cross(u, v))


def _unit(vec: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(vec)
    if norm == 0:
        return vec
    return vec / norm


BEAD_MAPS: Dict[Symmetry, Type[BeadMap]] = {
    Symmetry.SPHERE: SphereMap,
    Symmetry.ELLIPSOID: EllipsoidMap,
}


class Map:
    r"""All bead maps of one molecule instance.

    Applying a Map applies each of its bead maps in the order they were added.
    """

    def __init__(self, source: Molecule, target: Molecule) -> None:
        self.source = source
        self.target = target
        self._bead_maps: List[BeadMap] = []

    def add_bead_map(self, bead_map: BeadMap) -> None:
        self._bead_maps.append(bead_map)

    def create_bead_map(
        self,
        symmetry: Symmetry,
        source: Topology,
        target: Topology,
        out_id: int,
        bead_names: Sequence[str],
        weights: Sequence[float],
        d: Optional[Sequence[float]] = None,
        map_name: str = "",
    ) -> BeadMap:
        """Build a bead map of the variant registered for symmetry and add it."""
        try:
            bead_map_class = BEAD_MAPS[Symmetry(symmetry)]
        except (KeyError, ValueError):
            raise MappingError("No bead map for symmetry {!r}.".format(symmetry)) from None
        bead_map = bead_map_class.from_names(
            source, self.source, target, out_id, bead_names, weights, d, map_name
        )
        self.add_bead_map(bead_map)
        return bead_map

    def apply(self, bc: BoundaryCondition) -> None:
        for bead_map in self._bead_maps:
            bead_map.apply(bc)

    def __iter__(self) -> Iterator[BeadMap]:
        return iter(self._bead_maps)

    def __len__(self) -> int:
        return len(self._bead_maps)
