# Configuration file for the Sphinx documentation builder.
#
# For the full list of built-in configuration values, see the documentation:
# https://www.sphinx-doc.org/en/master/usage/configuration.html

import sys
from pathlib import Path

# -- Path setup --------------------------------------------------------------

# Make the grebe package importable for autodoc when building from docs/.
sys.path.insert(0, str(Path("../..").resolve()))

from grebe.version import __version__

# -- Project information -----------------------------------------------------

project = "grebe"
copyright = "2026, grebe developers"
author = "grebe developers"
release = __version__

# -- General configuration ---------------------------------------------------

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",  # Google style docstrings
    "sphinx.ext.viewcode",
    "sphinx_rtd_theme",
]

autodoc_member_order = "bysource"
templates_path = ["_templates"]
exclude_patterns = []

# -- Options for HTML output -------------------------------------------------

html_theme = "sphinx_rtd_theme"
html_static_path = ["_static"]
