"""
Test suite for the SEEN deadline service.

This package contains:
- Unit tests (models, schedules, timezone arithmetic, stores, evaluator, services)
- API endpoint tests
- Integration tests for the scheduler tick
- Database migration tests
- Property-based tests
"""
