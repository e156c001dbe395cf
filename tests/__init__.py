"""
DachsTaler Engine Test Suite
============================

Test Organization
-----------------
- tests/unit/          : Fast tests on the in-memory store (no external dependencies)
- tests/integration/   : SQLite durable mirror and a Redis testcontainer

Testing Philosophy
------------------
- Unit tests: deterministic clock and seeded randomness through `GameEngine`
- Integration tests: real infrastructure, skipped when Docker is missing
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
