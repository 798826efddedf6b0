"""
Integration tests for the NFT Flow API.

These tests run full refresh cycles against in-process upstream sources
and read the results back over HTTP. No network access is needed.

Run with:
    pytest tests/integration/ -v -m integration

Skip with:
    pytest -m "not integration"
"""
