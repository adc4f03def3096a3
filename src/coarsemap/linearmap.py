r"""Matrix form of mappings and optimal force maps for force matching.

A TopologyMap is applied bead by bead with periodic unwrapping. For whole
trajectories that are already unwrapped it is often more convenient to treat
the mapping as two matrices of shape (n_cg_sites, n_fg_sites): one for
positions (and velocities) and one for forces. LinearMap holds such a matrix and
maps trajectory arrays of shape (n_steps, n_sites, n_dims) in one go.

The force matrix need not follow from the position weights alone. Any force map
f with config_matrix @ f.T = identity yields forces consistent with the
position map, and the one with the smallest mean squared mapped force gives the
least noisy force-matching targets. qp_linear_map searches for it as a quadratic
program; redistribution_coefficients turns the result back into per-bead d
coefficients for a molecule definition.
"""

from typing import Dict, FrozenSet, List, Set, Tuple, Union
from typing_extensions import TypedDict
import numpy as np
from qpsolvers import solve_qp  # type: ignore [import-untyped]
from .errors import MappingError
from .structure import BeadStructure
from .topologymap import TopologyMap

Constraints = Set[FrozenSet[int]]

SolverOptions = TypedDict(
    "SolverOptions",
    {
        "solver": str,
        "eps_abs": float,
        "max_iter": int,
        "polish": bool,
        "polish_refine_iter": int,
    },
    total=False,
)
DEFAULT_SOLVER_OPTIONS: SolverOptions = {
    "solver": "osqp",
    "eps_abs": 1e-7,
    "max_iter": int(1e3),
    "polish": True,
    "polish_refine_iter": 10,
}


class LinearMap:
    r"""Linear map from fine-grained to coarse-grained sites.

    The map is stored as its standard matrix of shape (n_cg_sites, n_fg_sites);
    element (i, j) is the coefficient of fine-grained site j in coarse-grained
    site i. Calling an instance maps arrays of shape (n_steps, n_fg_sites,
    n_dims) to (n_steps, n_cg_sites, n_dims).
    """

    def __init__(self, mapping, n_fg_sites=None):
        r"""Initialize from a matrix or from lists of site indices.

        Arguments
        ---------
        mapping (2-d numpy.ndarray or list of lists of integers):
            Either the standard matrix itself or, for each cg site, the list of
            fg sites it averages with equal weights.
        n_fg_sites (integer or None):
            Required with the list form (it cannot be inferred); must be None
            with the matrix form.

        Example:
            [[0, 2, 3], [4]] with n_fg_sites=6 is the same map as
                [ 1/3 0   1/3 1/3 0   0  ]
                [ 0   0   0   0   1   0  ]
        """
        if isinstance(mapping, np.ndarray) and mapping.ndim == 2:
            if n_fg_sites is not None:
                raise ValueError("n_fg_sites must not be given with a mapping matrix.")
            self._standard_matrix = mapping.astype(float)
        elif hasattr(mapping, "__iter__"):
            if n_fg_sites is None:
                raise ValueError("n_fg_sites is required when mapping is a list.")
            mapping = list(mapping)
            matrix = np.zeros((len(mapping), n_fg_sites))
            for site, members in enumerate(mapping):
                matrix[site, list(members)] = 1 / len(members)
            self._standard_matrix = matrix
        else:
            raise ValueError("Cannot build a LinearMap from {!r}.".format(type(mapping)))

    @property
    def standard_matrix(self) -> np.ndarray:
        return self._standard_matrix

    @property
    def n_cg_sites(self) -> int:
        return self._standard_matrix.shape[0]

    @property
    def n_fg_sites(self) -> int:
        return self._standard_matrix.shape[1]

    @property
    def participating_fg(self) -> List[List[int]]:
        """For each cg site, the fg sites with a nonzero coefficient."""
        return [list(np.nonzero(row)[0]) for row in self._standard_matrix]

    def __call__(self, points: np.ndarray) -> np.ndarray:
        return trjdot(points, self._standard_matrix)


def trjdot(points: np.ndarray, factor: np.ndarray) -> np.ndarray:
    r"""Contract the site axis of a trajectory array with a mapping matrix.

    Arguments
    ---------
    points (numpy.ndarray):
        Array of shape (n_steps, n_sites, n_dims).
    factor (numpy.ndarray):
        Matrix of shape (n_cg_sites, n_sites), or (n_steps, n_cg_sites, n_sites)
        for a map that changes every frame.

    Returns
    -------
    numpy.ndarray of shape (n_steps, n_cg_sites, n_dims).
    """
    if factor.ndim == 2:
        return np.einsum("tfd,cf->tcd", points, factor)
    if factor.ndim == 3:
        return np.einsum("tfd,tcf->tcd", points, factor)
    raise ValueError("Factor matrix is an incompatible shape.")


def linear_maps(topology_map: TopologyMap) -> Tuple[LinearMap, LinearMap]:
    r"""Express a TopologyMap as position and force matrices.

    Rows are indexed by the bead ids of the target topology and columns by the
    bead ids of the source topology. Periodic unwrapping is not represented;
    use the matrices only on trajectories whose CG beads are whole.

    Returns
    -------
    Tuple (position map, force map) of LinearMap objects.
    """
    shape = (topology_map.target.n_beads, topology_map.source.n_beads)
    positions = np.zeros(shape)
    forces = np.zeros(shape)
    for molecule_map in topology_map:
        for bead_map in molecule_map:
            for element in bead_map.elements:
                positions[bead_map.out_id, element.bead_id] += element.weight
                forces[bead_map.out_id, element.bead_id] += element.force_weight
    return LinearMap(positions), LinearMap(forces)


def guess_pairwise_constraints(xyz: np.ndarray, threshold: float = 1e-3) -> Constraints:
    r"""Find pairs of sites whose distance does not fluctuate.

    Arguments
    ---------
    xyz (numpy.ndarray):
        Positions of shape (n_steps, n_sites, n_dims).
    threshold (positive float):
        Pairs whose distance has a standard deviation below this value (in
        units of xyz) are taken as constrained.

    Returns
    -------
    Set of frozensets, each holding the indices of a constrained pair.
    """
    displacements = xyz[:, None, :, :] - xyz[:, :, None, :]
    dists = np.linalg.norm(displacements, axis=-1)
    sds = np.std(dists, axis=0)
    np.fill_diagonal(sds, np.inf)
    inds = np.nonzero(sds < threshold)
    return {frozenset((int(a), int(b))) for a, b in zip(*inds)}


def reduce_constraint_sets(constraints: Constraints) -> Constraints:
    r"""Merge overlapping constraint groups.

    {{1, 2}, {2, 3}, {4, 5}} becomes {{1, 2, 3}, {4, 5}}: atoms constrained to
    a common partner are constrained together.
    """
    members = set().union(*constraints) if constraints else set()
    graph = BeadStructure(members)
    for group in constraints:
        group = sorted(group)
        for other in group[1:]:
            graph.add_edge(group[0], other)
    return {frozenset(c) for c in graph.components() if len(c) > 1}


def make_bond_constraint_matrix(n_sites: int, constraints: Constraints) -> np.ndarray:
    r"""Matrix expanding shared coefficients onto constrained atoms.

    Atoms that are rigidly constrained to each other must get the same force
    map coefficient. The returned matrix M of shape (n_sites, n_free) maps a
    reduced coefficient vector onto the full one; for sites 1 and 2
    constrained out of 4 sites:
        [1 0 0]
        [0 1 0]
        [0 1 0]
        [0 0 1]

    Arguments
    ---------
    n_sites (integer):
        Number of fine-grained sites.
    constraints (set of frozensets of integers):
        Groups of constrained sites.

    Returns
    -------
    numpy.ndarray of shape (n_sites, n_free).
    """
    anchors: Dict[int, int] = {}
    for group in reduce_constraint_sets(constraints):
        sites = sorted(group)
        for site in sites[1:]:
            anchors[site] = sites[0]
    free = [s for s in range(n_sites) if s not in anchors]
    column = {site: col for col, site in enumerate(free)}
    mat = np.zeros((n_sites, len(free)))
    for site in range(n_sites):
        mat[site, column[anchors.get(site, site)]] = 1.0
    return mat


def _qp_form(forces: np.ndarray) -> np.ndarray:
    # (n_steps, n_sites, n_dims) -> (n_steps * n_dims, n_sites)
    mixed = np.swapaxes(forces, 1, 2)
    return np.reshape(mixed, (mixed.shape[0] * mixed.shape[1], -1))


def qp_linear_map(
    forces: np.ndarray,
    config_mapping: LinearMap,
    constraints: Union[None, Constraints] = None,
    l2_regularization: float = 0.0,
    restrict_support: bool = False,
    solver_args: SolverOptions = DEFAULT_SOLVER_OPTIONS,
) -> LinearMap:
    r"""Search for the force map with the smallest mean squared mapped force.

    Arguments
    ---------
    forces (numpy.ndarray):
        Fine-grained forces of shape (n_steps, n_fg_sites, n_dims).
    config_mapping (LinearMap):
        Position map; the force map f must satisfy
        config_mapping.standard_matrix @ f.T = identity.
    constraints (set of frozensets or None):
        Groups of rigidly constrained sites, which share coefficients.
    l2_regularization (float):
        If positive, adds this multiple of the squared norm of the (full)
        coefficient vector to the objective.
    restrict_support (boolean):
        If truthy, each cg site may only use the fg sites with a nonzero
        position weight in that site. Such maps can be written back into a
        molecule definition (see redistribution_coefficients).
    solver_args (dict):
        Passed to qpsolvers.solve_qp.

    Returns
    -------
    LinearMap holding the force map.
    """
    if constraints is None:
        constraints = set()
    flat_forces = _qp_form(forces)
    config = config_mapping.standard_matrix
    rows = []
    for site in range(config_mapping.n_cg_sites):
        if restrict_support:
            support = np.nonzero(config[site])[0]
        else:
            support = np.arange(config_mapping.n_fg_sites)
        local = {int(s): i for i, s in enumerate(support)}
        local_constraints = {
            frozenset(local[s] for s in group)
            for group in constraints
            if all(s in local for s in group)
        }
        con_mat = make_bond_constraint_matrix(len(support), local_constraints)
        reduced_forces = flat_forces[:, support] @ con_mat
        qp_mat = reduced_forces.T @ reduced_forces
        if l2_regularization > 0.0:
            qp_mat += l2_regularization * (con_mat.T @ con_mat)
        eq_mat = config[:, support] @ con_mat
        target = np.zeros(config_mapping.n_cg_sites)
        target[site] = 1.0
        # rows without support in this site are trivially satisfied
        keep = np.any(eq_mat != 0, axis=1)
        solution = solve_qp(
            P=qp_mat,
            q=np.zeros(qp_mat.shape[0]),
            A=eq_mat[keep],
            b=target[keep],
            **solver_args,
        )
        if solution is None:
            raise ValueError("Quadratic program for cg site {} did not converge.".format(site))
        row = np.zeros(config_mapping.n_fg_sites)
        row[support] = con_mat @ solution
        rows.append(row)
    return LinearMap(np.stack(rows))


def redistribution_coefficients(
    force_map: LinearMap, config_mapping: LinearMap, atol: float = 1e-8
) -> List[np.ndarray]:
    r"""Convert a force map into d coefficients per cg site.

    With position weights w_i and force weights f_i = d_i / w_i, the
    coefficients are d_i = f_i * w_i over the sites participating in the
    position map.

    Arguments
    ---------
    force_map (LinearMap):
        Force map, e.g. from qp_linear_map with restrict_support.
    config_mapping (LinearMap):
        Position map with normalized rows.
    atol (float):
        Force coefficients smaller than this outside the position support are
        treated as zero.

    Returns
    -------
    List with one array per cg site, ordered like config_mapping's
    participating_fg entries for that site.
    """
    forces = force_map.standard_matrix
    config = config_mapping.standard_matrix
    if forces.shape != config.shape:
        raise ValueError("Force map and position map have different shapes.")
    outside = (config == 0) & (np.abs(forces) > atol)
    if np.any(outside):
        site, fg = (int(i[0]) for i in np.nonzero(outside))
        raise MappingError(
            "Force map uses fg site {} for cg site {} although its position weight "
            "is zero.".format(fg, site)
        )
    coefficients = []
    for site, members in enumerate(config_mapping.participating_fg):
        coefficients.append(forces[site, members] * config[site, members])
    return coefficients
