"""Shared fixtures for kubemirror tests."""

from __future__ import annotations

import pytest

from kubemirror.access.service import ResourceAccess
from kubemirror.models.config import KubeMirrorConfig, WatchConfig
from tests.fakes import FakeCluster


@pytest.fixture
def fake_cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def live_access(fake_cluster: FakeCluster) -> ResourceAccess:
    """Access layer with the watch fan-out disabled: every read goes live."""
    return ResourceAccess(fake_cluster, KubeMirrorConfig(watch=WatchConfig(enabled=False)))
