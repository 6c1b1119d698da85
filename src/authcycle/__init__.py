"""
authcycle: credential lifecycle management for remote game service clients.

This package keeps a client's layered credentials usable: long-lived access
tokens from a pluggable identity provider and short-lived session tickets
issued by the remote service. Refreshes are serialized process-wide, cached
locally per identity, and retried with bounded backoff.
"""

from importlib.metadata import version

__version__ = version("authcycle")
__all__ = ["__version__"]
