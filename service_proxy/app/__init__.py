"""
GitHub API proxy service package.

The proxy sits between the browser application and api.github.com,
enforcing:
- Credentials: a server-side token, validated once at startup
- Rate limiting: a per-caller sliding window over mutating requests
- Caching: a bounded LRU of GET responses with ETag revalidation

Structure:
- app.main: FastAPI app, routes, and service wiring.
- app.credentials: Token shape validation and authorization scheme.
- app.caching: Bounded, recency-ordered response cache.
- app.ratelimit: Per-caller mutation limiter.
- app.forwarding: Request forwarding and response interpretation.

Design notes:
- Module import must not perform network calls.
- Cache and limiter are constructor-injected; there are no module-level
  singletons, so tests build isolated instances.
"""
