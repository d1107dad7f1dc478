"""Counter store adapters.

The limiter talks to the shared store only through
:class:`~window_limiter.adapters.store.base.AbstractCounterStore`, so Redis
and the in-memory fake are interchangeable.
"""
