"""Audit log backends."""
