"""JSON-over-HTTP surface for a single wishkeeper session."""
