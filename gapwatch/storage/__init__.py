"""Local storage for exported sessions."""

from .file_manager import FileManager

__all__ = ["FileManager"]
