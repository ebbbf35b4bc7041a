"""Rate limiting adapters.

The HTTP layer depends on ``AbstractRateLimiter`` only, so the in-memory
limiter can later be replaced by a shared store (e.g. Redis) for
multi-instance deployments without touching middleware or routes.
"""
