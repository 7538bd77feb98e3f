"""
Computation core: money helpers, the equal-split allocator and the
balance aggregator. Pure functions over in-memory snapshots; no I/O.
"""
