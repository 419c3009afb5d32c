"""
Settings package: configuration API and schema validation.

This package provides:

- :mod:`FamilyLedger.settings.lib` – Session config paths, schema validation, and section get/set/revert.
"""
