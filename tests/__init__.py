"""
Test suite for Field Trial Ingest.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_transform_service.py -v
"""
