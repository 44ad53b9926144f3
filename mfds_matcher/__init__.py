"""
MFDS catalog matching agent: links free-text product labels to MFDS catalog
records and counts the generic products sharing their active ingredient.
"""

__version__ = "1.0.0"
