"""
Rate limiting package for the proxy.

Holds the per-caller sliding-window limiter that throttles mutating
requests independently of the upstream's own limits.
"""
