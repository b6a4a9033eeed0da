"""
HTTP API layer (FastAPI).

- app: application factory with lifespan and request-context middleware
- dependencies: bearer auth, optional auth, per-user rate limiting
- errors: exception to JSON error envelope mapping
- schemas: request bodies
- routes: one router per feature area
"""
