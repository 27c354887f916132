"""OTA Updates API - expo-updates compatible manifest and asset server."""

__version__ = "0.1.0"
