"""Utility helpers for smrnaflow."""
