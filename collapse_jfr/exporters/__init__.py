"""
Writers for aggregated tables and per-event timestamped streams.
"""
