"""Security tests for the issuer: claim tampering, key exposure and token forgery."""
