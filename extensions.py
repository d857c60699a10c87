"""
Shared Flask extensions.

The limiter reads RATELIMIT_DEFAULT / RATELIMIT_STORAGE_URI / RATELIMIT_ENABLED
from app config at init_app() time.
"""

from __future__ import annotations

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
