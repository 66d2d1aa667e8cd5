"""Configuration management with Pydantic models."""

from .settings import BusSettings

__all__ = ["BusSettings"]
