"""HTTP surface for the declaration engine."""
