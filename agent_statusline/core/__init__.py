"""
Core modules for the agent status line.

This package contains pricing resolution, log decoding, incremental
scanning, cost accumulation and window aggregation.
"""
