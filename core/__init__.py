"""Core module - configuration, error taxonomy, formatting, observability.

Shared by the resolver, the tool layer, orchestration, the voice pipeline,
and the HTTP surface. Nothing here knows about individual tools.
"""

__version__ = "1.0.0"
