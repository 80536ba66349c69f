"""Concrete image adapters, one sub-package per provider."""
