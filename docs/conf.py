"""Sphinx configuration for dockship documentation."""

import os
import sys

# Add project root to path
sys.path.insert(0, os.path.abspath(".."))

from dockship import __version__

# Project information
project = "dockship"
copyright = "2026, dockship contributors"
author = "dockship contributors"
version = __version__
release = __version__

# General configuration
extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.viewcode",
    "sphinx.ext.napoleon",
    "myst_parser",
]

templates_path = ["_templates"]
exclude_patterns = ["_build", "Thumbs.db", ".DS_Store"]

# Options for HTML output
html_theme = "alabaster"
html_theme_options = {
    "description": "Staged container deployment to a remote host behind Nginx",
}

# MyST parser settings
myst_enable_extensions = [
    "colon_fence",
    "deflist",
]

# Autodoc settings
autodoc_member_order = "bysource"
autodoc_typehints = "description"

# Napoleon settings
napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_include_init_with_doc = True
