"""Maps atomistic configurations onto coarse-grained (CG) representations.

A CG bead replaces a group of atoms. Its position and velocity are weighted
averages of the atoms' values and its force a second, independently weighted
sum, both computed under periodic boundary conditions. Mass is conserved.

The primary entry point is engine.CGEngine: load molecule definitions, create
the CG topology from an atomistic one, and apply the returned TopologyMap once
per frame.

See engine.py, beadmap.py and the README for more information. Tests and
examples are also available.
"""
