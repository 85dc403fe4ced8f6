"""In-process caches with reader/writer locking."""

from .rwlock import AsyncRWLock
from .project_cache import CacheMap, ProjectCache, compile_term_pattern

__all__ = ["AsyncRWLock", "CacheMap", "ProjectCache", "compile_term_pattern"]
