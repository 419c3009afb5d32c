# Configuration file for the Sphinx documentation builder.
#
# For the full list of built-in configuration values, see the documentation:
# https://www.sphinx-doc.org/en/master/usage/configuration.html

# add project root to sys.path for autodoc
import os
import sys

sys.path.insert(0, os.path.abspath('../..'))
# -- Project information -----------------------------------------------------

project = 'FamilyLedger'
release = '0.1.0'

# -- General configuration ---------------------------------------------------

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.coverage',
    'sphinx.ext.napoleon',
    'sphinx.ext.viewcode',
    'sphinx.ext.autosectionlabel',
]

napoleon_google_docstring = True
napoleon_use_param = False
napoleon_use_ivar = False

pygments_style = "vs"
pygments_dark_style = "stata-dark"

templates_path = ['_templates']
exclude_patterns = []

autodoc_default_options = {
    'member-order': 'groupwise',
    'show-inheritance': True,
}
autodoc_preserve_defaults = True
autodoc_mock_imports = ['PySide6']

# -- Options for HTML output -------------------------------------------------

html_theme = 'furo'
highlight_language = "python"
