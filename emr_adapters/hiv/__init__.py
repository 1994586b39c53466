"""
HIV care and ART indicators.

Extends the core engine with HIV-specific vocabulary, cohorts and the ART
indicator library.
"""

from .indicators import ART_INDICATORS, build_art_indicator_library

__all__ = ["ART_INDICATORS", "build_art_indicator_library"]
