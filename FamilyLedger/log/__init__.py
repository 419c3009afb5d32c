"""
Logging subsystem for application logging.

Modules:

- :mod:`FamilyLedger.log.log` – Root logger setup, Qt message bridge and the in-memory log tank.
"""
