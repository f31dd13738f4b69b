"""Shared helpers used across the project apps."""
