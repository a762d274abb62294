"""Playback coordination and tracklist enrichment for the record shop storefront."""
__version__ = "0.1.0"
