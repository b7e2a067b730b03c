from .src.rearrangement_anion import (
    rearrangement_anion_predict,
    find_reactive_centers,
    rearrange,
    RearrangementOptions,
    CenterSearch,
    ReactiveMarks,
    ReactiveCenter,
    MalformedCenterError,
)
from .src.utils import show_results, mol_from_smiles

__all__ = [
    "rearrangement_anion_predict",
    "find_reactive_centers",
    "rearrange",
    "RearrangementOptions",
    "CenterSearch",
    "ReactiveMarks",
    "ReactiveCenter",
    "MalformedCenterError",
    "show_results",
    "mol_from_smiles",
]
