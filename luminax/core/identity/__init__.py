"""Bearer token verification against the configured identity provider."""
