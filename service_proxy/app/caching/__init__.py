"""
Proxy caching package.

Holds the bounded, recency-ordered cache of upstream GET responses. Cache
state lives only in process memory and is lost on restart.
"""
