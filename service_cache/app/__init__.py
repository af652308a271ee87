"""
Query Cache Service package.

Hosts the in-memory timed cache, the performance metrics recorder and the
query optimizer that composes them, and exposes their status over HTTP via
the `/performance` endpoints. Prometheus metrics are served on `/metrics`.
"""
