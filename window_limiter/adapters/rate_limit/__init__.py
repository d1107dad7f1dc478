"""Rate limiting adapters.

This package keeps the admission algorithm behind a small abstraction so
the HTTP layer does not depend on how counters are stored.
"""
