"""Governance: the admin pause switch."""
