"""
emailgate Test Suite
====================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with fakes and mocks
- tests/integration/   : Store tests against PostgreSQL via testcontainers

Use pytest markers (`integration`, `database`) to select suites.
"""
