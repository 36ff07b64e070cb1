"""Storage handlers module."""
