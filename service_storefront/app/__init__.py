"""
Storefront Service package.

Fronts the catalog, content and promotion read endpoints with a response
cache and exposes the cache management API.

Structure:
- app.main: FastAPI app, cache management routes, and wiring.
- app.caching: Cache service, storage backends, entity registry, HTTP middleware.
- app.domain: Cross-cutting domain helpers (e.g., principal resolution).
"""
