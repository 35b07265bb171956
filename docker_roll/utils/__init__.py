"""Utility helpers for docker-roll."""
