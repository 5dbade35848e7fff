"""
Test Fixtures Package

In-memory fakes shared across the unit tests.
"""

from .fakes import FakeClock, FakeSynthesizer, FakeTier, InMemoryRedis

__all__ = ["InMemoryRedis", "FakeTier", "FakeClock", "FakeSynthesizer"]
