r"""Binds molecule definitions to the molecules of a configuration.

CGEngine keeps the loaded CGMoleculeDef objects indexed by their ident. Given an
input topology it creates the CG molecules in an output topology and returns the
TopologyMap that keeps the output in sync with the input frame by frame.
"""

from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union
import logging
from .definition import CGMoleculeDef
from .structure import break_into_structures
from .topology import Topology
from .topologymap import TopologyMap

logger = logging.getLogger(__name__)

# separates definition files given as one string
FILE_SEPARATOR = ";"


class CGEngine:
    r"""Registry of molecule definitions driving topology mapping.

    Molecules whose names match an ignore pattern are skipped silently;
    molecules without a definition are skipped with a warning. Neither case is
    an error.
    """

    def __init__(self, definitions: Iterable[CGMoleculeDef] = ()) -> None:
        self._defs: Dict[str, CGMoleculeDef] = {}
        self._ignores: List[str] = []
        for definition in definitions:
            self.add_molecule_def(definition)

    def add_molecule_def(self, definition: CGMoleculeDef) -> None:
        if definition.ident in self._defs:
            logger.debug("replacing definition of %s", definition.ident)
        structures = break_into_structures(definition.bead_structure())
        if len(structures) > 1 and definition.bonded:
            logger.warning(
                "definition %s (%s) describes %d disconnected groups of beads",
                definition.ident,
                definition.source,
                len(structures),
            )
        self._defs[definition.ident] = definition

    def load_molecule_type(self, filenames: Union[str, Path]) -> None:
        r"""Load one or more definition files.

        Arguments
        ---------
        filenames (string or Path):
            A single path, or several paths separated by ";". Whitespace
            around each path is ignored.
        """
        for name in str(filenames).split(FILE_SEPARATOR):
            name = name.strip()
            if not name:
                continue
            definition = CGMoleculeDef.load(name)
            logger.debug("loaded definition %s from %s", definition.ident, name)
            self.add_molecule_def(definition)

    def get_molecule_def(self, name: str) -> Optional[CGMoleculeDef]:
        return self._defs.get(name)

    @property
    def idents(self) -> List[str]:
        return sorted(self._defs)

    def add_ignore(self, pattern: str) -> None:
        """Skip molecules whose name matches the shell-style pattern."""
        self._ignores.append(pattern)

    def is_ignored(self, name: str) -> bool:
        return any(fnmatchcase(name, pattern) for pattern in self._ignores)

    def create_cg_topology(
        self, source: Topology, target: Topology, check_reduced: bool = False
    ) -> TopologyMap:
        r"""Create the CG molecules of source in target.

        Arguments
        ---------
        source (Topology):
            Fine-grained topology.
        target (Topology):
            Topology receiving the CG molecules; usually empty.
        check_reduced (boolean):
            Passed to the returned TopologyMap.

        Returns
        -------
        TopologyMap to apply for every frame. Exclusions of target are rebuilt
        from the bonded interactions the definitions declare.
        """
        topology_map = TopologyMap(source, target, check_reduced=check_reduced)
        target.box = source.box
        target.step = source.step
        target.time = source.time
        for molecule in source.molecules:
            if self.is_ignored(molecule.name):
                logger.debug("ignoring molecule %s (id %d)", molecule.name, molecule.id + 1)
                continue
            definition = self.get_molecule_def(molecule.name)
            if definition is None:
                logger.warning(
                    'unknown molecule "%s" with id %d in topology; it will not be '
                    "mapped to the CG representation. Check that a mapping file exists "
                    "for every molecule (several files are separated by %r) and that "
                    "its ident matches the molecule name.",
                    molecule.name,
                    molecule.id + 1,
                    FILE_SEPARATOR,
                )
                continue
            cg_molecule = definition.create_molecule(target)
            topology_map.add_molecule_map(
                definition.create_map(source, molecule, target, cg_molecule)
            )
        target.rebuild_exclusions()
        logger.info(
            "mapped %d of %d molecules to %d CG beads",
            len(topology_map),
            len(source.molecules),
            target.n_beads,
        )
        return topology_map
