from rdkit import Chem
from rdkit.Chem import Draw, rdchem
from IPython.display import display

LONE_PAIR_PROP = "lone_pairs"

# Everything except aromaticity perception, so Kekulé input stays Kekulé
KEKULE_SANITIZE_OPS = (
    Chem.SanitizeFlags.SANITIZE_ALL ^ Chem.SanitizeFlags.SANITIZE_SETAROMATICITY
)


def electronic_lone_pairs(atom: rdchem.Atom) -> int:
    """Lone pairs implied by the atom's electron count.

    Non-bonding electrons are the outer-shell electrons minus the formal
    charge, minus one electron per unit of bond order (hydrogens included),
    minus radical electrons. Half of them, rounded down, are paired.
    """
    pt = rdchem.GetPeriodicTable()
    outer = pt.GetNOuterElecs(atom.GetAtomicNum())
    bonded = sum(b.GetBondTypeAsDouble() for b in atom.GetBonds())
    bonded += atom.GetTotalNumHs()
    free = outer - atom.GetFormalCharge() - int(round(bonded))
    free -= atom.GetNumRadicalElectrons()
    return max(0, free // 2)


def lone_pair_count(atom: rdchem.Atom) -> int:
    """Stored lone-pair count, or the electronic estimate when none is stored."""
    if atom.HasProp(LONE_PAIR_PROP):
        return atom.GetIntProp(LONE_PAIR_PROP)
    return electronic_lone_pairs(atom)


def set_lone_pair_count(atom: rdchem.Atom, count: int) -> None:
    if count < 0:
        raise ValueError(f"Negative lone-pair count {count} on atom {atom.GetIdx()}")
    atom.SetIntProp(LONE_PAIR_PROP, count)


def assign_lone_pairs(mol: rdchem.Mol) -> rdchem.Mol:
    """Store the electronic lone-pair count on every atom of `mol` (in place)."""
    for atom in mol.GetAtoms():
        set_lone_pair_count(atom, electronic_lone_pairs(atom))
    return mol


def mol_from_smiles(smiles: str, lone_pairs: bool = True) -> rdchem.Mol:
    """Parse SMILES keeping the written Kekulé bonds.

    RDKit would otherwise perceive rings such as the cyclohexadienyl anion
    as aromatic and replace their single/double bonds with aromatic ones.

    Raises:
        ValueError: If the SMILES cannot be parsed or sanitized.
    """
    mol = Chem.MolFromSmiles(smiles, sanitize=False)
    if mol is None:
        raise ValueError(f"Failed to parse SMILES {smiles!r}")
    try:
        Chem.SanitizeMol(mol, sanitizeOps=KEKULE_SANITIZE_OPS)
    except Exception as e:
        raise ValueError(f"Failed to sanitize SMILES {smiles!r}: {e}") from e
    if lone_pairs:
        assign_lone_pairs(mol)
    return mol


def _label_all_atoms(mol):
    # Copy with atoms labeled by symbol, charge and index (shows C's too)
    labeled = Chem.Mol(mol)
    for atom in labeled.GetAtoms():
        q = atom.GetFormalCharge()
        charge = "" if q == 0 else ("+" if q > 0 else "-") * abs(q)
        atom.SetProp("atomLabel", f"{atom.GetSymbol()}{charge}:{atom.GetIdx()}")
    return labeled


def show_results(products, mols_per_row=3, size=(300, 300)):
    """Draw reactants and rearranged products, return a text summary.

    `products` is a RearrangementProducts container. Atoms are labeled with
    their index so the identity mapping can be read off the pictures.
    """
    reactants = products.reactants()
    if reactants:
        r_img = Draw.MolsToGridImage(
            [_label_all_atoms(m) for m in reactants],
            molsPerRow=mols_per_row,
            subImgSize=size,
            legends=[Chem.MolToSmiles(m) for m in reactants],
        )
        display(r_img)

    mols = []
    legends = []
    for r in products:
        mols.append(_label_all_atoms(r.product))
        legends.append(f"{r.product_smiles()}\n{r.describe()}")
    if mols:
        img = Draw.MolsToGridImage(
            mols, molsPerRow=mols_per_row, subImgSize=size, legends=legends
        )
        display(img)

    summary_lines = [f"{len(products)} rearrangement products"]
    for i, r in enumerate(products, start=1):
        center_pairs = ", ".join(
            f"{e.kind}{e.reactant_idx}->{e.product_idx}" for e in r.center_mapping
        )
        summary_lines.append(
            f"{i}. {r.product_smiles():<40} | center: {r.center.as_tuple()} "
            f"| mapped: {center_pairs}"
        )
    return "\n".join(summary_lines)
