"""
Client side of the portfolio GitHub integration.

- github_client: Resilient client controller (timeouts, backoff, rate-limit waits).
- merge: Merge-before-write helpers for todo/idea collections.
- repo_service: Repository metadata lookups with fallback summaries.
- task_store: Per-app todo lists persisted through the contents API.

Everything here talks to the proxy over HTTP only; nothing imports from
service_proxy.
"""
