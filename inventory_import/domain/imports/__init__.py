"""
Inventory CSV import pipeline: security checks, row mapping, classification,
batched writes and audit-log correlation.
"""
