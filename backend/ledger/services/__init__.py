"""
Ledger services package.

WHY: Services hold the invoice rules (money math, status resolution,
reminder cadence) and the operations that apply them, keeping route
handlers thin.
"""
