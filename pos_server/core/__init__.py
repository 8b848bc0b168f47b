"""
Core infrastructure: storage, errors, identity, live cache.
"""
