"""
Tests for mars-orchestrator.

All tests run offline against the stub providers in helpers.py; the HTTP
provider is exercised through httpx.MockTransport.
"""
