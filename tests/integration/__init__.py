"""
Integration tests.

These talk to a real Redis (REDIS_HOST / REDIS_PORT) and are skipped when
none is reachable.
"""
