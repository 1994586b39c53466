"""Cohort indicator engine.

This package contains composable cohort expressions, their evaluation against
an abstract patient query provider, and the registry of named indicators,
isolated from any EMR storage for easy testing and reasoning.
"""
