"""Kind resolution for kubemirror.

Exposes:
    CoordinateResolver -- kind -> Coordinate with a session-lifetime cache.
"""

from kubemirror.discovery.resolver import CoordinateResolver

__all__ = ["CoordinateResolver"]
