"""
Core modules for AI Cost Meter.

This package contains tier policies, the usage ledger, rate limiting,
result caching, admission control, capacity optimization and metrics
reporting.
"""
