"""
SDK for AI Cost Meter.

Provides metered wrappers around model clients.
"""

from .openai_client import MeteredOpenAI

__all__ = ["MeteredOpenAI"]
