"""Exceptions raised when a mapping definition cannot be applied."""


class MappingError(ValueError):
    """Raised for invalid coarse-graining setups.

    Covers mismatched weight and bead counts, references to atoms missing from a
    molecule, zero position weights paired with nonzero force redistribution
    coefficients, and beads too large for the periodic box.
    """
