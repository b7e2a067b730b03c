from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Literal, Tuple

from rdkit.Chem import rdchem

ObjectKind = Literal["atom", "bond"]


@dataclass(frozen=True)
class MappingEntry:
    """One reactant -> product correspondence, keyed by stable indices."""

    kind: ObjectKind
    reactant_idx: int
    product_idx: int


@dataclass(frozen=True)
class AtomBondMap:
    """Bidirectional index map between a reactant and its product.

    Entries are ordered atoms first, then bonds, each in molecule order.
    Lookups in both directions are backed by dictionaries built once at
    construction time.
    """

    entries: Tuple[MappingEntry, ...]
    _forward: Dict[Tuple[str, int], int] = field(
        init=False, repr=False, compare=False
    )
    _backward: Dict[Tuple[str, int], int] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        forward: Dict[Tuple[str, int], int] = {}
        backward: Dict[Tuple[str, int], int] = {}
        for e in self.entries:
            if (e.kind, e.reactant_idx) in forward:
                raise ValueError(f"Duplicate reactant {e.kind} {e.reactant_idx}")
            if (e.kind, e.product_idx) in backward:
                raise ValueError(f"Duplicate product {e.kind} {e.product_idx}")
            forward[(e.kind, e.reactant_idx)] = e.product_idx
            backward[(e.kind, e.product_idx)] = e.reactant_idx
        # frozen dataclass: bypass __setattr__ for derived lookup tables
        object.__setattr__(self, "_forward", forward)
        object.__setattr__(self, "_backward", backward)

    @classmethod
    def identity(cls, mol: rdchem.Mol) -> "AtomBondMap":
        """Map built for a structure-preserving copy of `mol`.

        An RDKit copy keeps atom and bond indices, so every reactant object
        corresponds to the product object with the same index.
        """
        atoms = [MappingEntry("atom", i, i) for i in range(mol.GetNumAtoms())]
        bonds = [MappingEntry("bond", i, i) for i in range(mol.GetNumBonds())]
        return cls(entries=tuple(atoms + bonds))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[MappingEntry]:
        return iter(self.entries)

    def product_index(self, kind: ObjectKind, reactant_idx: int) -> int:
        try:
            return self._forward[(kind, reactant_idx)]
        except KeyError:
            raise KeyError(f"No mapped product {kind} for index {reactant_idx}") from None

    def reactant_index(self, kind: ObjectKind, product_idx: int) -> int:
        try:
            return self._backward[(kind, product_idx)]
        except KeyError:
            raise KeyError(f"No mapped reactant {kind} for index {product_idx}") from None

    def restricted_to(
        self, atom_indices: List[int], bond_indices: List[int]
    ) -> Tuple[MappingEntry, ...]:
        """Entries for the given reactant atoms and bonds, in the order given."""
        atoms = [
            MappingEntry("atom", i, self.product_index("atom", i)) for i in atom_indices
        ]
        bonds = [
            MappingEntry("bond", i, self.product_index("bond", i)) for i in bond_indices
        ]
        return tuple(atoms + bonds)

    def pairs(self) -> List[Tuple[str, int, int]]:
        # Serializable form: (kind, reactant_idx, product_idx)
        return [(e.kind, e.reactant_idx, e.product_idx) for e in self.entries]
