"""Aquamarket: listing lifecycle, moderation overlay and featuring for an aquarium classifieds site."""

__version__ = "0.1.0"
