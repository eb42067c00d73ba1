"""kubemirror: discovery-driven dynamic resource access for Kubernetes.

Resolves arbitrary kinds to API coordinates at runtime, mirrors every
list+watch capable kind into local stores, and serves reads from those
stores when they can be trusted.
"""

__version__ = "0.1.0"
