"""
Application Configuration Module

Persisted service configuration plus credential and appearance endpoints.
"""

from .models import AppConfig, create_app_config

__all__ = ["AppConfig", "create_app_config"]
