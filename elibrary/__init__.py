"""E-Library client package root.

Client-side persistence and synchronization layer for the E-Library REST
backend: session handling, the HTTP/domain API client, the durable local
fallback store and the policy that decides between them.
"""

__version__ = "0.4.0"

__all__ = [
    "__version__",
]
