"""
Credential handling for the proxy.

Validates the configured upstream token and picks the authorization
scheme the upstream expects for it.
"""
