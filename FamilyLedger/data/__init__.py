"""
FamilyLedger data package: analytics over synchronized expenses.

This package provides:

- :mod:`FamilyLedger.data.data` – Conversion of cached expense records into DataFrames (:func:`FamilyLedger.data.data.expenses_to_frame`) and category, member and monthly trend summaries.
- :mod:`FamilyLedger.data.model` – Read-only table models over those summaries.
- :mod:`FamilyLedger.data.view` – :class:`FamilyLedger.data.view.SummaryView`, rebuilt whenever the cached expenses change.
"""
