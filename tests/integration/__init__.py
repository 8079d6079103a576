"""
Integration tests for the issuer API.

Tests use the Flask test client and cover:
- Role write/read/list/delete
- Exact validation error lists
- Signing and third-party verification through the key endpoint
"""
