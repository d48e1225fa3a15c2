"""DNS resolution building blocks: blocklists, allowlists, caching and configuration."""

__version__ = "0.1.0"