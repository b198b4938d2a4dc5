"""
Schema Designer Test Suite.

This package contains:
- unit/: Unit tests (pure functions and in-memory documents)
- integration/: Integration tests (tool facade end to end, HTTP transport)
"""
