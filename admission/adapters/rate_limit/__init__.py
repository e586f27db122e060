"""Counter store adapters for rate limiting.

The Redis store is the production binding; the in-process store implements
the same sliding window for tests and local runs.
"""
