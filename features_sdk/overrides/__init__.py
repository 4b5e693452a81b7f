"""
Override package.

Local forced values that win over any server-resolved result. Overrides
never cause network activity and are orthogonal to cache freshness.
"""

from .store import OverrideStore

__all__ = ["OverrideStore"]
