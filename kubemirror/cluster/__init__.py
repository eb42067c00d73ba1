"""Cluster connection for kubemirror.

Exposes:
    ClusterConnection -- kubernetes-asyncio backed discovery, generic object
                         access, watch streams, pod logs and usage metrics.
    resource_path     -- REST path builder for a Coordinate.
"""

from kubemirror.cluster.connection import MERGE_PATCH, ClusterConnection, resource_path

__all__ = ["MERGE_PATCH", "ClusterConnection", "resource_path"]
