"""
livetable test suite.

This package contains:
- unit/: Unit tests (model, store, buffer, reconciler, settings)
- integration/: Live table host over the in-memory table
"""
