"""Utility helpers shared by the build pipeline."""
