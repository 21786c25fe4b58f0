"""Utility helpers for the retail kernel."""
