# Sphinx configuration for the anion rearrangement docs.
# Build with: sphinx-build -b html docs/source docs/build

from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(ROOT))

project = "Anion Rearrangement"
copyright = "2025, Peter G. Chang"
author = "Peter G. Chang"

version = "0.1.0"
release = "0.1.0"

extensions = [
    "myst_parser",
    "sphinx.ext.autodoc",
    "sphinx.ext.autosummary",
    "sphinx.ext.intersphinx",
    "sphinx.ext.viewcode",
    "sphinx_copybutton",
    "sphinx_autodoc_typehints",
    "sphinx.ext.napoleon",
]

html_theme = "furo"

autosummary_generate = True
autodoc_typehints = "description"
autodoc_default_options = {
    "members": True,
    "undoc-members": True,
    "show-inheritance": True,
}

# RDKit and IPython are not needed to render the API pages
autodoc_mock_imports = ["rdkit", "IPython"]

napoleon_google_docstring = True
napoleon_numpy_docstring = False

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
}
