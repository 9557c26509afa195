"""
Adapters connecting the metering core to external services.
"""
