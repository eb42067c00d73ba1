"""Derived read-only views built on the read path."""

from kubemirror.views.events import list_events
from kubemirror.views.ingress import flatten_ingress, list_ingresses
from kubemirror.views.logs import PodLogAggregator
from kubemirror.views.usage import UsageView

__all__ = ["PodLogAggregator", "UsageView", "flatten_ingress", "list_events", "list_ingresses"]
