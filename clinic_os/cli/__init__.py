"""Command-line interface for Clinic OS."""
