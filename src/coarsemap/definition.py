r"""Definitions describing how one kind of molecule is coarse-grained.

A definition is read from a YAML file:

    ident: SOL
    name: SOL
    topology:
      cg_beads:
        - name: CG
          type: SOL
          mapping: A
          beads: OW HW1 HW2
          symmetry: 1
      cg_bonded:
        bond:
          - name: bond
            beads: CG1 CG2  CG2 CG3
    maps:
      - name: A
        weights: 16 1 1
        d: 1 1 1

ident is matched against molecule names of the input configuration. Each CG
bead lists the source beads it is built from and names the map holding their
weights. d (the force redistribution coefficients) is optional. Bonded
interactions refer to CG beads by name and are the only source of bonded
topology for the CG molecule.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union
import logging
import yaml
from .beadmap import Map
from .errors import MappingError
from .structure import BeadStructure
from .topology import INTERACTION_SIZES, Interaction, Molecule, Symmetry, Topology

logger = logging.getLogger(__name__)


def _words(value: Union[None, str, int, float, Sequence[Any]]) -> List[str]:
    if value is None:
        return []
    # YAML reads "weights: 1" as a number
    if isinstance(value, (str, int, float)):
        return str(value).split()
    return [str(v) for v in value]


def _floats(value: Union[str, int, float, Sequence[Any]], what: str) -> List[float]:
    try:
        return [float(v) for v in _words(value)]
    except ValueError:
        raise MappingError("Could not read numbers from {}: {!r}".format(what, value)) from None


@dataclass
class CGBeadDef:
    """One CG bead of a molecule definition."""

    name: str
    type: str
    mapping: str
    beads: List[str]
    symmetry: Symmetry = Symmetry.SPHERE
    charge: float = 0.0


@dataclass
class CGMapDef:
    """Position weights and optional redistribution coefficients of a mapping."""

    name: str
    weights: List[float]
    d: Optional[List[float]] = None


@dataclass
class CGBondedDef:
    """A group of bonded interactions of one kind between CG beads."""

    kind: str
    group: str
    beads: List[List[str]] = field(default_factory=list)


class CGMoleculeDef:
    r"""Coarse-graining recipe for one molecule type.

    Creates the CG molecule (beads and bonded interactions) in an output
    topology and the Map that fills it from an input molecule.
    """

    def __init__(
        self,
        ident: str,
        beads: Sequence[CGBeadDef],
        maps: Sequence[CGMapDef],
        bonded: Sequence[CGBondedDef] = (),
        name: Optional[str] = None,
        source: str = "<memory>",
    ) -> None:
        self.ident = ident
        self.name = ident if name is None else name
        self.source = source
        self.beads = list(beads)
        self.maps = {m.name: m for m in maps}
        self.bonded = list(bonded)
        self._validate()

    def _validate(self) -> None:
        names = [b.name for b in self.beads]
        if not names:
            raise MappingError("Molecule definition {} ({}) has no CG beads.".format(self.ident, self.source))
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise MappingError(
                "Molecule definition {} ({}) repeats bead names {}.".format(
                    self.ident, self.source, duplicates
                )
            )
        for bead in self.beads:
            if bead.mapping not in self.maps:
                raise MappingError(
                    "Bead {} of {} ({}) uses unknown map {}.".format(
                        bead.name, self.ident, self.source, bead.mapping
                    )
                )
        for group in self.bonded:
            for members in group.beads:
                unknown = [n for n in members if n not in names]
                if unknown:
                    raise MappingError(
                        "{} {} of {} ({}) refers to unknown beads {}.".format(
                            group.kind, group.group, self.ident, self.source, unknown
                        )
                    )

    @classmethod
    def from_dict(cls, conf: Mapping[str, Any], source: str = "<dict>") -> "CGMoleculeDef":
        r"""Build a definition from an already parsed mapping.

        Arguments
        ---------
        conf (mapping):
            Content laid out as in the module docstring.
        source (string):
            Where conf came from; used in error messages.

        Returns
        -------
        CGMoleculeDef instance.
        """
        if not isinstance(conf, Mapping):
            raise MappingError("Molecule definition in {} is not a mapping.".format(source))
        try:
            ident = str(conf["ident"])
            topology = conf["topology"]
            bead_confs = topology["cg_beads"]
            map_confs = conf["maps"]
        except (KeyError, TypeError) as err:
            raise MappingError("Molecule definition in {} lacks {}.".format(source, err)) from None

        beads = []
        for bead in bead_confs:
            try:
                beads.append(
                    CGBeadDef(
                        name=str(bead["name"]),
                        type=str(bead["type"]),
                        mapping=str(bead["mapping"]),
                        beads=_words(bead["beads"]),
                        symmetry=Symmetry(int(bead.get("symmetry", 1))),
                        charge=float(bead.get("charge", 0.0)),
                    )
                )
            except KeyError as err:
                raise MappingError("CG bead in {} lacks {}.".format(source, err)) from None
            except ValueError as err:
                raise MappingError("Bad CG bead in {}: {}".format(source, err)) from None

        maps = []
        for entry in map_confs:
            try:
                name = str(entry["name"])
                weights = _floats(entry["weights"], "weights of map {}".format(name))
            except KeyError as err:
                raise MappingError("Map in {} lacks {}.".format(source, err)) from None
            d = entry.get("d")
            maps.append(
                CGMapDef(
                    name=name,
                    weights=weights,
                    d=None if d is None else _floats(d, "d of map {}".format(name)),
                )
            )

        bonded = []
        for kind, groups in (topology.get("cg_bonded") or {}).items():
            if kind not in INTERACTION_SIZES:
                raise MappingError("Unknown bonded interaction {!r} in {}.".format(kind, source))
            size = INTERACTION_SIZES[kind]
            for group in groups or ():
                words = _words(group.get("beads"))
                if len(words) % size:
                    raise MappingError(
                        "{} {} in {}: number of beads ({}) is not a multiple of {}.".format(
                            kind, group.get("name"), source, len(words), size
                        )
                    )
                bonded.append(
                    CGBondedDef(
                        kind=kind,
                        group=str(group.get("name", kind)),
                        beads=[words[i : i + size] for i in range(0, len(words), size)],
                    )
                )

        return cls(ident, beads, maps, bonded, name=conf.get("name"), source=source)

    @classmethod
    def load(cls, filename: Union[str, Path]) -> "CGMoleculeDef":
        """Read a definition from a YAML file."""
        path = Path(filename)
        conf = yaml.safe_load(path.read_text())
        return cls.from_dict(conf, source=str(path))

    def bead_structure(self) -> BeadStructure:
        """Connectivity of the CG beads through the declared bonds."""
        index = {b.name: i for i, b in enumerate(self.beads)}
        edges = [
            (index[a], index[b])
            for group in self.bonded
            if group.kind == "bond"
            for a, b in group.beads
        ]
        return BeadStructure(range(len(self.beads)), edges)

    def create_molecule(self, topology: Topology) -> Molecule:
        r"""Add an empty CG molecule (beads without state) to topology.

        Bonded interactions are registered too; exclusions are left to
        Topology.rebuild_exclusions.
        """
        molecule = topology.create_molecule(self.name)
        residue = topology.create_residue(self.name)
        ids = {}
        for bead_def in self.beads:
            bead = topology.create_bead(
                bead_def.symmetry,
                bead_def.name,
                bead_def.type,
                residue.id,
                0.0,
                bead_def.charge,
            )
            molecule.add_bead(bead)
            ids[bead_def.name] = bead.id
        for group in self.bonded:
            for index, members in enumerate(group.beads):
                topology.add_bonded_interaction(
                    Interaction(
                        kind=group.kind,
                        group=group.group,
                        bead_ids=tuple(ids[n] for n in members),
                        molecule=molecule.id,
                        index=index,
                    )
                )
        return molecule

    def create_map(
        self,
        source: Topology,
        molecule: Molecule,
        target: Topology,
        cg_molecule: Molecule,
    ) -> Map:
        r"""Wire a Map from molecule (in source) to cg_molecule (in target).

        cg_molecule must have been created by create_molecule of this
        definition, so its beads are in definition order.
        """
        if len(cg_molecule) != len(self.beads):
            raise MappingError(
                "Molecule {} has {} beads but definition {} declares {}.".format(
                    cg_molecule.name, len(cg_molecule), self.ident, len(self.beads)
                )
            )
        molecule_map = Map(molecule, cg_molecule)
        for bead_def, out_id in zip(self.beads, cg_molecule.beads):
            map_def = self.maps[bead_def.mapping]
            molecule_map.create_bead_map(
                bead_def.symmetry,
                source,
                target,
                out_id,
                bead_def.beads,
                map_def.weights,
                map_def.d,
                map_def.name,
            )
        return molecule_map

    def __repr__(self) -> str:
        return "CGMoleculeDef(ident={!r}, n_beads={})".format(self.ident, len(self.beads))
