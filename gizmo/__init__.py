"""Configuration, field management, telemetry and device tools for the Gizmo platform."""

__version__ = "0.1.0"