"""
Test suite for the JWT issuer.

This package contains:
- unit/: Core components exercised without HTTP
- integration/: The issuer API through the Flask test client
- contracts/: Responses validated against the OpenAPI contract
- security/: Claim tampering, key exposure and forgery checks
"""
