"""Rate limiting global / Global rate limiter.

Utilise slowapi pour limiter les requetes par IP (flux de positions, check-ins).
Uses slowapi to limit requests per IP (position feed, check-ins).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
