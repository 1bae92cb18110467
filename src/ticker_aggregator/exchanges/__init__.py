from .adapter import ExchangeAdapter
from .rate_limit import RateLimiter

__all__ = ["ExchangeAdapter", "RateLimiter"]
