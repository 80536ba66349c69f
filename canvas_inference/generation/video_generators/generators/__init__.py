"""Concrete video adapters, one sub-package per provider."""
