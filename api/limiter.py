"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount as middleware) and by every module under
api/routes/v1/ (to apply per-route limits with @limiter.limit()).

All routes must share this one instance so they share one in-memory counter
store. The dashboard runs as a single process, so memory:// is enough.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
