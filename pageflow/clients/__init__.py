from .content_source import ContentSource, HTTPContentSource

__all__ = ["ContentSource", "HTTPContentSource"]
