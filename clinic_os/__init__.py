"""Clinic OS scheduling core: slots, conflicts and availability fetching."""

__version__ = "0.3.0"
