"""Utility helpers for dynamiccrud."""
