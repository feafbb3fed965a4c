"""
Tests Package - Unit and Integration Tests

Test structure:
- tests/unit/ - Fast, isolated unit tests
- tests/integration/ - Multi-slice job runs over real state files and CSV datasets
- tests/conftest.py - Shared fixtures (fake geocoder, recording continuation, stores)

No Redis or network access is needed: the geocoder is scripted, Redis
clients are mocked and state lives under pytest's tmp_path.
"""
