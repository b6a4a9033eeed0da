"""Infrastructure layer: config, logging, persistence, events, identity, rate limiting."""
