"""REST API for Clinic OS."""

from clinic_os.api.app import create_app

__all__ = ["create_app"]
