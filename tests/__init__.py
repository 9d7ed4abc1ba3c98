"""
Tests Package - Unit Tests

Remote services are faked with httpx.MockTransport and in-memory stand-ins;
waits are recorded by an injected sleep instead of taken.
"""
