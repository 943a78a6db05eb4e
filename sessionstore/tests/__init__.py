"""
Tests Module: Unit and Integration Tests

Test Coverage:
    - Core types (Result, expiration conversions), errors, configuration
    - Statement builder, record pool, executors
    - Session access layer against a real SQLite table
"""
