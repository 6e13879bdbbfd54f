"""
Request forwarding package.

Turns one inbound request into at most one upstream request and
interprets the reply against the cache.
"""
