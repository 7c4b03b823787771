"""
Memory Pipeline Test Suite.

- unit/: Component tests (gate, analyzer, significance, stores, search, container)
- integration/: Pipeline end to end and HTTP API tests
- conftest.py: Shared fixtures and in-memory backend stand-ins

Run tests with: pytest
"""
