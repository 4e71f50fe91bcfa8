"""Inbound webhook handling: verification, normalization, dispatch."""
