"""Physarum slime-mold trail simulation."""

__version__ = "0.1.0"
