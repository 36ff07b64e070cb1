"""Adapters: Rest.li encoding, request building, dispatch and output formatting."""
