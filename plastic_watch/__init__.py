"""Plastic Watch - crowdsourced plastic waste reporting."""

from plastic_watch.app import create_app

__all__ = ["create_app"]
