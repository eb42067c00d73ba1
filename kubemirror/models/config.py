"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ClusterConfig:
    """Cluster connection configuration."""

    kubeconfig: str = ""
    request_timeout_seconds: int = 30


@dataclass
class WatchConfig:
    """Watch fan-out configuration.

    ``include_kinds`` empty means every list+watch capable kind is eligible;
    ``exclude_kinds`` is applied after it.
    """

    enabled: bool = True
    lazy: bool = False
    include_kinds: list[str] = field(default_factory=list)
    exclude_kinds: list[str] = field(default_factory=list)
    timeout_seconds: int = 300
    initial_list_attempts: int = 3
    list_page_size: int = 500
    sync_timeout_seconds: int = 60


@dataclass
class LogsConfig:
    """Pod log aggregation configuration."""

    tail_ceiling: int = 300


@dataclass
class APIConfig:
    """REST status API configuration."""

    enabled: bool = True
    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeMirrorConfig:
    """Top-level kubemirror configuration."""

    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    logs: LogsConfig = field(default_factory=LogsConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
