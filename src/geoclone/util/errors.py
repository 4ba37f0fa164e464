from __future__ import annotations

class GeoCloneError(Exception):
    """Base exception for the application."""

class UserCancelledError(GeoCloneError):
    """Raised when user cancels an in-progress job."""

class ExifToolError(GeoCloneError):
    """Raised when ExifTool invocation fails."""

class SourceParseError(GeoCloneError):
    """Raised when a track-log source cannot be parsed."""

class ConfigError(GeoCloneError):
    """Raised when configuration or the policy table is invalid."""

class TransformError(GeoCloneError):
    """Raised when a single photo cannot be transformed or written."""

class DiscoveryError(GeoCloneError):
    """Raised when the source root cannot be enumerated."""
