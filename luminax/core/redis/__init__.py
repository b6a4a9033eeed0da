"""Redis client lifecycle and request rate limiting."""
