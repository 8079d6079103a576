"""HTTP routes for the issuer service."""
