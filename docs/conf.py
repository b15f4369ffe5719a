"""Sphinx configuration for TrackConnections API documentation.

Build with ``sphinx-build docs docs/_build`` from the repository root.
The API reference is generated from the Google-style docstrings of the
``trackconn`` package and ``main``.
"""

import os
import sys
from datetime import datetime

sys.path.insert(0, os.path.abspath(".."))

project = "TrackConnections API"
current_year = datetime.now().year
copyright = f"{current_year}, TrackConnections"
author = "TrackConnections Team"
release = "0.1.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
]

# Importing the routers would open Redis and mail connections otherwise.
autodoc_mock_imports = ["cloudinary", "fastapi_mail", "fastapi_limiter", "fakeredis"]
autodoc_default_options = {
    "members": True,
    "member-order": "bysource",
    "undoc-members": False,
}
autodoc_typehints = "description"

napoleon_google_docstring = True
napoleon_numpy_docstring = False

templates_path = ["_templates"]
exclude_patterns: list[str] = ["_build"]

html_theme = "alabaster"
html_static_path = ["_static"]
