"""Services layer of the library system."""

from library_system.services.library import BookSearchCriteria, Library, SystemStats, create_library

__all__ = ["BookSearchCriteria", "Library", "SystemStats", "create_library"]
