"""State/store layer.

The signal store is the single source of truth for the latest time/price
values received from remote publishers. Only decoded signal updates may be
applied to it.
"""
