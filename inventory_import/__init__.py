"""Bulk CSV import of inventory records with a per-row audit trail."""
