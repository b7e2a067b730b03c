import pytest
from rdkit import Chem

from anionrearrangement.src.utils import LONE_PAIR_PROP, mol_from_smiles


def canonical(mol):
    # Same canonicalization for products and expected structures, Kekulé kept
    return Chem.MolToSmiles(
        mol_from_smiles(Chem.MolToSmiles(mol), lone_pairs=False), canonical=True
    )


def snapshot(mol):
    atoms = [
        (
            a.GetSymbol(),
            a.GetFormalCharge(),
            a.GetTotalNumHs(),
            a.GetNoImplicit(),
            a.GetIntProp(LONE_PAIR_PROP) if a.HasProp(LONE_PAIR_PROP) else None,
            a.GetPropsAsDict(),
        )
        for a in mol.GetAtoms()
    ]
    bonds = [
        (b.GetBeginAtomIdx(), b.GetEndAtomIdx(), b.GetBondType(), b.GetPropsAsDict())
        for b in mol.GetBonds()
    ]
    return atoms, bonds


@pytest.fixture
def allyl_anion():
    # [C-]-C=C-C
    return mol_from_smiles("[CH2-]C=CC")


@pytest.fixture
def fluoro_ring_anion():
    return mol_from_smiles("[F+]=C1C=CC=C[CH-]1")


@pytest.fixture
def pentadienyl_anion():
    return mol_from_smiles("C=C[CH-]C=C")


def build_mol(atoms, bonds):
    """Molecule assembled with RWMol, left unsanitized.

    atoms: (symbol, formal charge) pairs; bonds: (begin, end, BondType).
    """
    rw = Chem.RWMol()
    for symbol, charge in atoms:
        atom = Chem.Atom(symbol)
        atom.SetFormalCharge(charge)
        rw.AddAtom(atom)
    for begin, end, bond_type in bonds:
        rw.AddBond(begin, end, bond_type)
    return rw.GetMol()
