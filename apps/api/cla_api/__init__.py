"""CLA Bot API - Contributor License Agreement enforcement for GitHub."""

__version__ = "0.1.0"
