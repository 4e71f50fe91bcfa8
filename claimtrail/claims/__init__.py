"""Claim status lifecycle and timeline projection."""
