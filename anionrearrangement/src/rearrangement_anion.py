"""Anion rearrangement: [A-]-B=C => A=B-[C-].

The negative charge (and one lone pair) on A moves into the A-B bond while
the B=C pi pair moves onto C, so the charge ends up one bond further away.
Detection runs in two phases, candidate generation followed by validation,
and each validated center is rewritten on a fresh copy of the reactant.
"""

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Sequence, Tuple, Union

from rdkit import Chem
from rdkit import RDLogger
from rdkit.Chem import rdchem
from rdkit.Chem.rdchem import BondType

from .mapping import AtomBondMap, MappingEntry
from .utils import (
    KEKULE_SANITIZE_OPS,
    lone_pair_count,
    set_lone_pair_count,
)

logger = logging.getLogger(__name__)

REACTIVE_CENTER_PROP = "reactive_center"

BOND_ORDER_UP = {
    BondType.SINGLE: BondType.DOUBLE,
    BondType.DOUBLE: BondType.TRIPLE,
}
BOND_ORDER_DOWN = {
    BondType.DOUBLE: BondType.SINGLE,
    BondType.TRIPLE: BondType.DOUBLE,
}


class MalformedCenterError(ValueError):
    """A center or marked set refers to atoms/bonds foreign to the molecule."""


class CenterSearch(Enum):
    """How reactive centers are found."""

    AUTO = "auto"
    MANUAL = "manual"


@dataclass(frozen=True)
class ReactiveMarks:
    """Atom and bond indices a caller marked as the reactive center."""

    atoms: FrozenSet[int] = frozenset()
    bonds: FrozenSet[int] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "atoms", frozenset(int(i) for i in self.atoms))
        object.__setattr__(self, "bonds", frozenset(int(i) for i in self.bonds))

    @classmethod
    def from_mol(
        cls, mol: rdchem.Mol, prop: str = REACTIVE_CENTER_PROP
    ) -> "ReactiveMarks":
        """Read marks from a boolean atom/bond property; `mol` is not modified."""
        atoms = [
            a.GetIdx() for a in mol.GetAtoms() if a.HasProp(prop) and a.GetBoolProp(prop)
        ]
        bonds = [
            b.GetIdx() for b in mol.GetBonds() if b.HasProp(prop) and b.GetBoolProp(prop)
        ]
        return cls(atoms=frozenset(atoms), bonds=frozenset(bonds))

    def is_empty(self) -> bool:
        return not self.atoms and not self.bonds


@dataclass
class RearrangementOptions:
    """Options to control center detection.

    - search: AUTO scans every negatively charged atom; MANUAL only looks at
      the marked atoms and bonds.
    - marks: the marked set used in MANUAL mode. When None, marks are read
      from each reactant's `reactive_center` atom/bond properties.
    """

    search: CenterSearch = CenterSearch.AUTO
    marks: Optional[ReactiveMarks] = None

    def __post_init__(self) -> None:
        if not isinstance(self.search, CenterSearch):
            try:
                self.search = CenterSearch(self.search)
            except ValueError as e:
                raise ValueError(
                    f"Unknown center search mode {self.search!r}; "
                    f"expected one of {[m.value for m in CenterSearch]}"
                ) from e

    def marks_for(self, mol: rdchem.Mol) -> ReactiveMarks:
        if self.marks is not None:
            return self.marks
        return ReactiveMarks.from_mol(mol)


@dataclass(frozen=True)
class ReactiveCenter:
    """Indices of the motif A, A-B, B, B=C, C."""

    atom_a: int
    bond_ab: int
    atom_b: int
    bond_bc: int
    atom_c: int

    def atoms(self) -> List[int]:
        return [self.atom_a, self.atom_b, self.atom_c]

    def bonds(self) -> List[int]:
        return [self.bond_ab, self.bond_bc]

    def as_tuple(self) -> Tuple[int, int, int, int, int]:
        return (self.atom_a, self.bond_ab, self.atom_b, self.bond_bc, self.atom_c)


@dataclass(frozen=True)
class ReactionResult:
    """One product of the rearrangement and its correspondence to the reactant."""

    reactant: rdchem.Mol
    product: rdchem.Mol
    center: ReactiveCenter
    mapping: AtomBondMap = field(repr=False)

    @property
    def center_mapping(self) -> Tuple[MappingEntry, ...]:
        """The five entries covering A, B, C and the bonds A-B, B-C."""
        return self.mapping.restricted_to(self.center.atoms(), self.center.bonds())

    def mapped_atom(self, reactant_idx: int) -> rdchem.Atom:
        return self.product.GetAtomWithIdx(
            self.mapping.product_index("atom", reactant_idx)
        )

    def mapped_bond(self, reactant_idx: int) -> rdchem.Bond:
        return self.product.GetBondWithIdx(
            self.mapping.product_index("bond", reactant_idx)
        )

    def product_smiles(self) -> str:
        return Chem.MolToSmiles(self.product, canonical=True)

    def describe(self) -> str:
        """Return a human-readable sentence describing the electron shift."""
        sym = [self.reactant.GetAtomWithIdx(i).GetSymbol() for i in self.center.atoms()]
        a, b, c = self.center.atoms()
        return (
            f"Lone pair on {sym[0]}{a} forms a pi bond to {sym[1]}{b}; "
            f"pi pair of {sym[1]}{b}={sym[2]}{c} moves onto {sym[2]}{c}"
        )


def _bond_joins(bond: rdchem.Bond, i: int, j: int) -> bool:
    return {bond.GetBeginAtomIdx(), bond.GetEndAtomIdx()} == {i, j}


def validate_center(mol: rdchem.Mol, center: ReactiveCenter) -> None:
    """Raise MalformedCenterError unless `center` is a contiguous A-B-C path in `mol`."""
    n_atoms = mol.GetNumAtoms()
    n_bonds = mol.GetNumBonds()
    for i in center.atoms():
        if not 0 <= i < n_atoms:
            raise MalformedCenterError(
                f"Atom index {i} not in molecule with {n_atoms} atoms"
            )
    for i in center.bonds():
        if not 0 <= i < n_bonds:
            raise MalformedCenterError(
                f"Bond index {i} not in molecule with {n_bonds} bonds"
            )
    if len(set(center.atoms())) != 3 or center.bond_ab == center.bond_bc:
        raise MalformedCenterError(f"Center {center.as_tuple()} is degenerate")
    if not _bond_joins(mol.GetBondWithIdx(center.bond_ab), center.atom_a, center.atom_b):
        raise MalformedCenterError(
            f"Bond {center.bond_ab} does not join atoms {center.atom_a} and {center.atom_b}"
        )
    if not _bond_joins(mol.GetBondWithIdx(center.bond_bc), center.atom_b, center.atom_c):
        raise MalformedCenterError(
            f"Bond {center.bond_bc} does not join atoms {center.atom_b} and {center.atom_c}"
        )


def _auto_candidates(mol: rdchem.Mol) -> List[ReactiveCenter]:
    candidates: List[ReactiveCenter] = []
    for atom_a in mol.GetAtoms():
        if atom_a.GetFormalCharge() >= 0:
            continue
        a = atom_a.GetIdx()
        for bond_ab in sorted(atom_a.GetBonds(), key=lambda x: x.GetIdx()):
            b = bond_ab.GetOtherAtomIdx(a)
            atom_b = mol.GetAtomWithIdx(b)
            for bond_bc in sorted(atom_b.GetBonds(), key=lambda x: x.GetIdx()):
                if bond_bc.GetIdx() == bond_ab.GetIdx():
                    continue
                if bond_bc.GetBondType() != BondType.DOUBLE:
                    continue
                c = bond_bc.GetOtherAtomIdx(b)
                if c == a:
                    continue
                candidates.append(
                    ReactiveCenter(a, bond_ab.GetIdx(), b, bond_bc.GetIdx(), c)
                )
    return candidates


def _manual_candidates(mol: rdchem.Mol, marks: ReactiveMarks) -> List[ReactiveCenter]:
    n_atoms = mol.GetNumAtoms()
    n_bonds = mol.GetNumBonds()
    foreign_atoms = sorted(i for i in marks.atoms if not 0 <= i < n_atoms)
    foreign_bonds = sorted(i for i in marks.bonds if not 0 <= i < n_bonds)
    if foreign_atoms or foreign_bonds:
        raise MalformedCenterError(
            f"Marked atoms {foreign_atoms} / bonds {foreign_bonds} are not in the molecule"
        )

    if len(marks.atoms) != 3 or len(marks.bonds) != 2:
        logger.debug(
            "Marked set has %d atoms and %d bonds, expected 3 and 2",
            len(marks.atoms),
            len(marks.bonds),
        )
        return []

    first, second = (mol.GetBondWithIdx(i) for i in sorted(marks.bonds))
    shared = {first.GetBeginAtomIdx(), first.GetEndAtomIdx()} & {
        second.GetBeginAtomIdx(),
        second.GetEndAtomIdx(),
    }
    if len(shared) != 1:
        logger.debug("Marked bonds %s do not share exactly one atom", sorted(marks.bonds))
        return []
    b = shared.pop()
    ends = {first.GetOtherAtomIdx(b), second.GetOtherAtomIdx(b)}
    if len(ends) != 2 or ends | {b} != marks.atoms:
        logger.debug("Marked atoms %s are not the path of the marked bonds", sorted(marks.atoms))
        return []

    # Either end may be the anion; validation keeps the orientation that fits
    candidates: List[ReactiveCenter] = []
    for bond_ab, bond_bc in ((first, second), (second, first)):
        candidates.append(
            ReactiveCenter(
                bond_ab.GetOtherAtomIdx(b),
                bond_ab.GetIdx(),
                b,
                bond_bc.GetIdx(),
                bond_bc.GetOtherAtomIdx(b),
            )
        )
    return candidates


def generate_candidates(
    mol: rdchem.Mol, options: RearrangementOptions
) -> List[ReactiveCenter]:
    """Structurally plausible centers, before chemical validation.

    Atoms are visited in index order, and for each atom its bonds in bond
    index order, so the result order only depends on the molecule.

    Raises:
        MalformedCenterError: In MANUAL mode, if marks point outside `mol`.
    """
    if options.search is CenterSearch.AUTO:
        return _auto_candidates(mol)
    return _manual_candidates(mol, options.marks_for(mol))


def prepare_reactant(mol: rdchem.Mol) -> rdchem.Mol:
    """Working copy of `mol` with valences computed and Kekulé bonds.

    Molecules built atom by atom have no implicit hydrogen counts yet, and
    RDKit's parser marks conjugated rings aromatic, which hides the B=C
    double bond. Kekulization keeps atom and bond indices, so the copy maps
    onto `mol` by identity. `mol` itself is not modified.
    """
    work = Chem.Mol(mol)
    work.UpdatePropertyCache(strict=False)
    if any(b.GetIsAromatic() for b in work.GetBonds()):
        Chem.Kekulize(work, clearAromaticFlags=True)
    return work


def check_preconditions(mol: rdchem.Mol, center: ReactiveCenter) -> bool:
    """Whether `center` can undergo [A-]-B=C => A=B-[C-] in `mol`.

    A must carry a negative charge and at least one lone pair, B and C must be
    neutral, A-B must have room for one more bond order (at most triple after
    the shift) and B=C must be a double bond.

    Raises:
        MalformedCenterError: If `center` does not belong to `mol`.
    """
    validate_center(mol, center)
    return _qualifies(prepare_reactant(mol), center)


def _qualifies(mol: rdchem.Mol, center: ReactiveCenter) -> bool:
    # `mol` is already prepared and `center` validated against it
    atom_a = mol.GetAtomWithIdx(center.atom_a)
    atom_b = mol.GetAtomWithIdx(center.atom_b)
    atom_c = mol.GetAtomWithIdx(center.atom_c)
    bond_ab = mol.GetBondWithIdx(center.bond_ab)
    bond_bc = mol.GetBondWithIdx(center.bond_bc)

    if atom_a.GetFormalCharge() > -1:
        return False
    if lone_pair_count(atom_a) < 1:
        return False
    if atom_b.GetFormalCharge() != 0 or atom_c.GetFormalCharge() != 0:
        return False
    if bond_ab.GetBondType() not in BOND_ORDER_UP:
        return False
    return bond_bc.GetBondType() == BondType.DOUBLE


def find_reactive_centers(
    mol: rdchem.Mol, options: RearrangementOptions | None = None
) -> List[ReactiveCenter]:
    """Every center in `mol` that rearranges successfully, in traversal order.

    Aromatic input is searched on a Kekulé copy, see `prepare_reactant`.
    """
    if options is None:
        options = RearrangementOptions()
    work = prepare_reactant(mol)
    centers: List[ReactiveCenter] = []
    for center in generate_candidates(work, options):
        validate_center(work, center)
        if _qualifies(work, center):
            centers.append(center)
        else:
            logger.debug("Candidate %s fails preconditions", center.as_tuple())
    return centers


def _freeze_hydrogens(atom: rdchem.Atom) -> None:
    # Hydrogen reconciliation is left to the caller
    atom.SetNumExplicitHs(atom.GetTotalNumHs())
    atom.SetNoImplicit(True)


def apply_rearrangement(
    mol: rdchem.Mol, center: ReactiveCenter
) -> Optional[rdchem.Mol]:
    """
    Move the negative charge of A onto C on a copy of `mol`.

    Args:
        mol (rdchem.Mol): The reactant; it is not modified.
        center (ReactiveCenter): A center satisfying `check_preconditions`.

    Returns:
        rdchem.Mol | None: The product, or None if RDKit rejects it.
    """
    # Make an editable copy
    rwm = rdchem.RWMol(mol)
    rwm.UpdatePropertyCache(strict=False)
    # Suppress RDKit warnings/errors during tentative edits and sanitize
    RDLogger.DisableLog("rdApp.error")
    RDLogger.DisableLog("rdApp.warning")
    try:
        atom_a = rwm.GetAtomWithIdx(center.atom_a)
        atom_c = rwm.GetAtomWithIdx(center.atom_c)
        # Lone pairs are read before any edit changes the electron count
        lp_a = lone_pair_count(atom_a)
        lp_c = lone_pair_count(atom_c)
        for i in center.atoms():
            _freeze_hydrogens(rwm.GetAtomWithIdx(i))

        bond_ab = rwm.GetBondWithIdx(center.bond_ab)
        bond_bc = rwm.GetBondWithIdx(center.bond_bc)
        bond_ab.SetBondType(BOND_ORDER_UP[bond_ab.GetBondType()])
        bond_bc.SetBondType(BOND_ORDER_DOWN[bond_bc.GetBondType()])

        atom_a.SetFormalCharge(atom_a.GetFormalCharge() + 1)
        set_lone_pair_count(atom_a, lp_a - 1)
        atom_c.SetFormalCharge(atom_c.GetFormalCharge() - 1)
        set_lone_pair_count(atom_c, lp_c + 1)

        newmol = rwm.GetMol()
        try:
            Chem.SanitizeMol(newmol, sanitizeOps=KEKULE_SANITIZE_OPS)
        except Exception:  # pylint: disable=broad-exception-caught
            # Discard invalid structures (e.g., valence violations)
            return None
        return newmol
    finally:
        RDLogger.EnableLog("rdApp.error")
        RDLogger.EnableLog("rdApp.warning")


def rearrange(mol: rdchem.Mol, center: ReactiveCenter) -> Optional[ReactionResult]:
    """Rewrite one center of `mol` and map the product back to it.

    Returns None when the center does not qualify (failed preconditions or a
    product RDKit cannot sanitize); such candidates are excluded, not errors.

    Raises:
        MalformedCenterError: If `center` references atoms/bonds foreign to
            `mol` or bonds that do not join its atoms.
    """
    validate_center(mol, center)
    work = prepare_reactant(mol)
    if not _qualifies(work, center):
        logger.debug("Center %s does not qualify", center.as_tuple())
        return None
    product = apply_rearrangement(work, center)
    if product is None:
        logger.debug("Product of center %s failed sanitization", center.as_tuple())
        return None
    return ReactionResult(
        reactant=mol,
        product=product,
        center=center,
        mapping=AtomBondMap.identity(mol),
    )


def _get_system_smiles_key(mol: rdchem.Mol) -> Tuple[str, ...]:
    """Canonical, fragment-order-invariant SMILES key for `mol`."""
    frags = Chem.GetMolFrags(mol, asMols=True, sanitizeFrags=False)
    return tuple(sorted(Chem.MolToSmiles(f, canonical=True) for f in frags))


class RearrangementProducts:
    """Holds every rearrangement result for a set of reactants.

    Results keep generation order: reactants in input order, then centers in
    traversal order within each reactant.

    Methods:
        products(): Product molecules, one per result
        reactants(): The reactants the results were generated from
        mapped_object(): Product atom/bond mapped to a reactant atom/bond
        unique(): Results with duplicate products removed
        to_dicts(): Serializable dicts for all results
        describe(): Human-readable description of a result
    """

    def __init__(self, results: List[ReactionResult], reactants: List[rdchem.Mol]):
        self._results = list(results)
        self._reactants = reactants.copy()

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[ReactionResult]:
        return iter(self._results)

    def __getitem__(self, i: int) -> ReactionResult:
        return self._results[i]

    def products(self) -> List[rdchem.Mol]:
        return [r.product for r in self._results]

    def reactants(self) -> List[rdchem.Mol]:
        return self._reactants.copy()

    def mapped_object(
        self, result: ReactionResult, obj: Union[rdchem.Atom, rdchem.Bond]
    ) -> Union[rdchem.Atom, rdchem.Bond]:
        """Return the product atom or bond mapped to reactant atom/bond `obj`."""
        if isinstance(obj, rdchem.Atom):
            return result.mapped_atom(obj.GetIdx())
        if isinstance(obj, rdchem.Bond):
            return result.mapped_bond(obj.GetIdx())
        raise TypeError(f"Expected an RDKit Atom or Bond, got {type(obj).__name__}")

    def unique(self) -> List[ReactionResult]:
        """Results with duplicates removed by canonical product SMILES."""
        seen = set()
        unique: List[ReactionResult] = []
        for r in self._results:
            key = _get_system_smiles_key(r.product)
            if key in seen:
                continue
            seen.add(key)
            unique.append(r)
        return unique

    def to_dicts(self) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = [
            {
                "reactant": Chem.MolToSmiles(r.reactant, canonical=True),
                "product": r.product_smiles(),
                "center": r.center.as_tuple(),
                "mapping": r.mapping.pairs(),
                "center_mapping": [
                    (e.kind, e.reactant_idx, e.product_idx) for e in r.center_mapping
                ],
                "description": self.describe(r),
            }
            for r in self._results
        ]
        return out

    def describe(self, result: ReactionResult) -> str:
        return result.describe()


def rearrangement_anion_predict(
    reactants: Union[rdchem.Mol, Sequence[rdchem.Mol]],
    options: RearrangementOptions | None = None,
) -> RearrangementProducts:
    """Apply [A-]-B=C => A=B-[C-] to every center of every reactant.

    Each reactant is processed on its own; every located center is rewritten
    starting from a fresh copy of the original reactant, so results never
    depend on each other.

    Args:
        reactants (rdchem.Mol | Sequence[rdchem.Mol]): Molecules to process.
            They are read, never modified.
        options (RearrangementOptions | None, optional): Center search mode
            and, for MANUAL mode, the marked set. Defaults to AUTO.

    Returns:
        RearrangementProducts: One result per reactive center found.

    Raises:
        ValueError: If any reactant is None.
        MalformedCenterError: If MANUAL marks point outside a reactant.
    """
    if options is None:
        options = RearrangementOptions()
    if isinstance(reactants, rdchem.Mol):
        reactants = [reactants]
    reactants = list(reactants)
    if any(m is None for m in reactants):
        bad_idx = [i for i, m in enumerate(reactants) if m is None]
        raise ValueError(
            f"Invalid reactant(s) at indices {bad_idx}: one or more SMILES "
            f"failed to parse"
        )

    results: List[ReactionResult] = []
    for i, mol in enumerate(reactants):
        centers = find_reactive_centers(mol, options)
        for center in centers:
            result = rearrange(mol, center)
            if result is None:
                logger.warning(
                    "Reactant %d: located center %s could not be rewritten",
                    i,
                    center.as_tuple(),
                )
                continue
            results.append(result)
        logger.debug("Reactant %d: %d reactive centers", i, len(centers))
    return RearrangementProducts(results=results, reactants=reactants)
