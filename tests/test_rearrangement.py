import pytest
from rdkit import Chem

from anionrearrangement import (
    CenterSearch,
    MalformedCenterError,
    ReactiveCenter,
    ReactiveMarks,
    RearrangementOptions,
    mol_from_smiles,
    rearrange,
    rearrangement_anion_predict,
)
from anionrearrangement.src.utils import LONE_PAIR_PROP

from anionrearrangement.src import rearrangement_anion

from conftest import build_mol, canonical, snapshot


def total_charge(mol):
    return sum(a.GetFormalCharge() for a in mol.GetAtoms())


def test_allyl_anion_auto(allyl_anion):
    mp = rearrangement_anion_predict([allyl_anion])

    assert len(mp) == 1
    r = mp[0]
    assert r.product.GetAtomWithIdx(2).GetFormalCharge() == -1
    assert r.product.GetAtomWithIdx(0).GetFormalCharge() == 0
    assert canonical(r.product) == canonical(mol_from_smiles("C=C[CH-]C"))
    assert len(r.center_mapping) == 5
    assert len(r.mapping) == allyl_anion.GetNumAtoms() + allyl_anion.GetNumBonds()


def test_allyl_anion_manual_matches_auto(allyl_anion):
    auto = rearrangement_anion_predict([allyl_anion])
    options = RearrangementOptions(
        search=CenterSearch.MANUAL,
        marks=ReactiveMarks(atoms={0, 1, 2}, bonds={0, 1}),
    )
    manual = rearrangement_anion_predict([allyl_anion], options)

    assert len(manual) == 1
    assert canonical(manual[0].product) == canonical(auto[0].product)
    assert manual[0].mapping.pairs() == auto[0].mapping.pairs()
    assert manual[0].center_mapping == auto[0].center_mapping


def test_non_contiguous_marks_give_no_results(allyl_anion):
    options = RearrangementOptions(
        search=CenterSearch.MANUAL,
        marks=ReactiveMarks(atoms={0, 1, 3}, bonds={0, 2}),
    )
    assert len(rearrangement_anion_predict([allyl_anion], options)) == 0


def test_fluoro_ring_anion(fluoro_ring_anion):
    mp = rearrangement_anion_predict([fluoro_ring_anion])

    assert len(mp) == 1
    r = mp[0]
    assert canonical(r.product) == canonical(mol_from_smiles("[F+]=C1C=C[CH-]C=C1"))
    assert len(r.center_mapping) == 5
    assert r.product.GetAtomWithIdx(4).GetFormalCharge() == -1
    assert r.product.GetAtomWithIdx(0).GetFormalCharge() == 1


def test_no_anion_leaves_input_untouched():
    mol = mol_from_smiles("C=CC=O")
    before = snapshot(mol)

    mp = rearrangement_anion_predict(mol)

    assert len(mp) == 0
    assert mp.products() == []
    assert snapshot(mol) == before


@pytest.mark.parametrize(
    "smiles", ["[CH2-]C=CC", "C=C[CH-]C=C", "[F+]=C1C=CC=C[CH-]1", "[O-]C=C"]
)
def test_conservation_and_read_only_input(smiles):
    mol = mol_from_smiles(smiles)
    before = snapshot(mol)

    mp = rearrangement_anion_predict([mol])

    assert len(mp) > 0
    for r in mp:
        assert r.product.GetNumAtoms() == mol.GetNumAtoms()
        assert r.product.GetNumBonds() == mol.GetNumBonds()
        assert total_charge(r.product) == total_charge(mol)
        assert len(r.mapping) == mol.GetNumAtoms() + mol.GetNumBonds()
        keys = [(e.kind, e.reactant_idx) for e in r.mapping]
        assert len(set(keys)) == len(keys)
        assert r.product is not mol
    assert snapshot(mol) == before


def test_lone_pairs_move_with_the_charge(allyl_anion):
    r = rearrangement_anion_predict([allyl_anion])[0]
    before_a = allyl_anion.GetAtomWithIdx(0).GetIntProp(LONE_PAIR_PROP)
    before_c = allyl_anion.GetAtomWithIdx(2).GetIntProp(LONE_PAIR_PROP)

    assert r.product.GetAtomWithIdx(0).GetIntProp(LONE_PAIR_PROP) == before_a - 1
    assert r.product.GetAtomWithIdx(2).GetIntProp(LONE_PAIR_PROP) == before_c + 1
    assert r.product.GetAtomWithIdx(0).GetTotalNumHs() == 2
    assert r.product.GetAtomWithIdx(2).GetTotalNumHs() == 1


def test_bond_orders_shift(allyl_anion):
    r = rearrangement_anion_predict([allyl_anion])[0]
    assert r.product.GetBondWithIdx(0).GetBondType() == Chem.BondType.DOUBLE
    assert r.product.GetBondWithIdx(1).GetBondType() == Chem.BondType.SINGLE
    assert r.product.GetBondWithIdx(2).GetBondType() == Chem.BondType.SINGLE


def test_enolate_moves_charge_to_carbon():
    mp = rearrangement_anion_predict([mol_from_smiles("[O-]C=C")])
    assert len(mp) == 1
    assert canonical(mp[0].product) == canonical(mol_from_smiles("O=C[CH2-]"))


def test_results_are_independent_and_deterministic(pentadienyl_anion):
    first = rearrangement_anion_predict([pentadienyl_anion])
    second = rearrangement_anion_predict([pentadienyl_anion])

    assert len(first) == 2
    # Each product carries exactly one anion, so neither built on the other
    for r in first:
        assert sum(1 for a in r.product.GetAtoms() if a.GetFormalCharge() < 0) == 1
    assert [r.center for r in first] == [r.center for r in second]
    assert [canonical(r.product) for r in first] == [
        canonical(r.product) for r in second
    ]
    assert len(first.unique()) == 1


def test_results_follow_reactant_order(allyl_anion, pentadienyl_anion):
    mp = rearrangement_anion_predict([pentadienyl_anion, mol_from_smiles("CC"), allyl_anion])
    assert [r.reactant for r in mp] == [pentadienyl_anion, pentadienyl_anion, allyl_anion]
    assert len(mp.reactants()) == 3


def test_none_reactant_raises(allyl_anion):
    with pytest.raises(ValueError, match=r"\[1\]"):
        rearrangement_anion_predict([allyl_anion, None])


def test_rearrange_rejects_foreign_center(allyl_anion):
    with pytest.raises(MalformedCenterError):
        rearrange(allyl_anion, ReactiveCenter(0, 0, 1, 5, 2))


def test_rearrange_excludes_unqualified_center(allyl_anion):
    # Reverse orientation: atom 2 carries no negative charge
    assert rearrange(allyl_anion, ReactiveCenter(2, 1, 1, 0, 0)) is None


def test_mapped_object(allyl_anion):
    mp = rearrangement_anion_predict([allyl_anion])
    r = mp[0]

    atom = mp.mapped_object(r, allyl_anion.GetAtomWithIdx(2))
    assert atom.GetFormalCharge() == -1
    bond = mp.mapped_object(r, allyl_anion.GetBondWithIdx(0))
    assert bond.GetBondType() == Chem.BondType.DOUBLE
    with pytest.raises(TypeError):
        mp.mapped_object(r, "C")


def test_to_dicts_and_describe(allyl_anion):
    mp = rearrangement_anion_predict([allyl_anion])
    (d,) = mp.to_dicts()

    assert d["center"] == (0, 0, 1, 1, 2)
    assert len(d["mapping"]) == 7
    assert d["center_mapping"][0] == ("atom", 0, 0)
    assert d["product"] == mp[0].product_smiles()
    assert "C0" in d["description"] and "C2" in d["description"]
    assert mp.describe(mp[0]) == d["description"]


def test_built_molecule_rearranges():
    mol = build_mol(
        [("C", -1), ("C", 0), ("C", 0), ("C", 0)],
        [
            (0, 1, Chem.BondType.SINGLE),
            (1, 2, Chem.BondType.DOUBLE),
            (2, 3, Chem.BondType.SINGLE),
        ],
    )
    mp = rearrangement_anion_predict(mol)

    assert len(mp) == 1
    assert canonical(mp[0].product) == canonical(mol_from_smiles("C=C[CH-]C"))
    assert mol.GetAtomWithIdx(0).GetFormalCharge() == -1
    assert mol.GetBondWithIdx(1).GetBondType() == Chem.BondType.DOUBLE


def test_fluoro_ring_anion_from_plain_parser():
    mol = Chem.MolFromSmiles("[F+]=C1C=CC=C[CH-]1")
    mp = rearrangement_anion_predict(mol)

    assert len(mp) == 1
    r = mp[0]
    assert canonical(r.product) == canonical(mol_from_smiles("[F+]=C1C=C[CH-]C=C1"))
    assert len(r.center_mapping) == 5
    assert len(r.mapping) == mol.GetNumAtoms() + mol.GetNumBonds()
    # The reactant keeps its aromatic bonds
    assert all(mol.GetBondWithIdx(i).GetIsAromatic() for i in range(1, 7))


def test_anion_double_bond_becomes_triple():
    mp = rearrangement_anion_predict(mol_from_smiles("[N-]=C=C"))

    assert len(mp) == 1
    product = mp[0].product
    assert product.GetBondWithIdx(0).GetBondType() == Chem.BondType.TRIPLE
    assert product.GetBondWithIdx(1).GetBondType() == Chem.BondType.SINGLE
    assert product.GetAtomWithIdx(0).GetFormalCharge() == 0
    assert product.GetAtomWithIdx(2).GetFormalCharge() == -1
    assert canonical(product) == canonical(mol_from_smiles("N#C[CH2-]"))


def test_located_center_that_fails_rewrite_is_reported(
    monkeypatch, caplog, allyl_anion
):
    monkeypatch.setattr(rearrangement_anion, "apply_rearrangement", lambda mol, c: None)

    with caplog.at_level("WARNING", logger=rearrangement_anion.__name__):
        mp = rearrangement_anion_predict([allyl_anion])

    assert len(mp) == 0
    assert "could not be rewritten" in caplog.text
    assert "(0, 0, 1, 1, 2)" in caplog.text
