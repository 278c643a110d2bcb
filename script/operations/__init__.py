"""Validator registry operations tooling."""
