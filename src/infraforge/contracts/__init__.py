"""Shared constants for the platform operator."""
