"""
Persistence layer.

Durable key-value state shared by the cache, fingerprint tracker and
notification scheduler.
"""
