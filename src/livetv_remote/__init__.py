"""Live TV remote: playlist ingestion and channel-session control."""

__version__ = "0.1.0"

__all__ = ["__version__"]
