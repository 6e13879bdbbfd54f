"""Caching, rate-limiting reverse proxy for the GitHub REST API."""
