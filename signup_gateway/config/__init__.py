"""Configuration module for the signup gateway."""
from .settings import AppConfig, load_settings

__all__ = ["AppConfig", "load_settings"]
