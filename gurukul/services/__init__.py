"""Gurukul outbound services."""
