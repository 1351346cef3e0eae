"""
Benchmark and scan drivers.
"""
