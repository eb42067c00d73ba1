"""Tests for the operator CLI."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
import yaml
from click.testing import CliRunner, Result

from kubemirror.cli import cli
from tests.fakes import FakeCluster, make_deployment, make_pod


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("kubemirror.cli.main.setup_logging", MagicMock())


def _invoke(cluster: FakeCluster, *args: str, stdin: str | None = None) -> Result:
    connects: list[dict[str, object]] = []

    async def _connect(**kwargs: object) -> FakeCluster:
        connects.append(kwargs)
        return cluster

    return CliRunner().invoke(cli, list(args), input=stdin, obj={"connect": _connect})


class TestReads:
    def test_get_json(self, fake_cluster: FakeCluster) -> None:
        fake_cluster.add("Pod", make_pod("web", "prod"))
        result = _invoke(fake_cluster, "-o", "json", "get", "Pod", "web", "-n", "prod")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["metadata"]["name"] == "web"
        assert fake_cluster.closed

    def test_list_yaml(self, fake_cluster: FakeCluster) -> None:
        fake_cluster.add("Pod", make_pod("web", "prod", app="web"))
        fake_cluster.add("Pod", make_pod("db", "prod", app="db"))
        result = _invoke(fake_cluster, "list", "Pod", "-n", "prod", "-l", "app=db")
        assert result.exit_code == 0, result.output
        assert yaml.safe_load(result.stdout) == [{"name": "db", "kind": "Pod", "namespace": "prod", "labels": {"app": "db"}}]

    def test_api_resources_cluster_scoped_only(self, fake_cluster: FakeCluster) -> None:
        result = _invoke(fake_cluster, "-o", "json", "api-resources", "--no-namespaced")
        assert result.exit_code == 0, result.output
        assert sorted(entry["kind"] for entry in json.loads(result.stdout)) == ["Namespace", "Node", "TokenReview"]

    def test_logs(self, fake_cluster: FakeCluster) -> None:
        fake_cluster.logs[("prod", "web", "app")] = "ready\n"
        result = _invoke(fake_cluster, "logs", "web", "-n", "prod", "-c", "app", "--tail", "20")
        assert result.exit_code == 0, result.output
        assert result.stdout == "ready\n"
        assert fake_cluster.calls_of("read_pod_log")[0][4] == 20


class TestWrites:
    def test_apply_from_stdin(self, fake_cluster: FakeCluster) -> None:
        manifest = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: cfg\n  namespace: prod\ndata:\n  a: '1'\n"
        result = _invoke(fake_cluster, "apply", "-f", "-", stdin=manifest)
        assert result.exit_code == 0, result.output
        assert "ConfigMap/cfg applied" in result.stdout
        assert fake_cluster.objects[("ConfigMap", "prod", "cfg")]["data"] == {"a": "1"}

    def test_delete(self, fake_cluster: FakeCluster) -> None:
        fake_cluster.add("Pod", make_pod("web", "prod"))
        result = _invoke(fake_cluster, "delete", "Pod", "web", "-n", "prod")
        assert result.exit_code == 0, result.output
        assert "Pod/web deleted" in result.stdout

    def test_restart(self, fake_cluster: FakeCluster) -> None:
        fake_cluster.add("Deployment", make_deployment("api", "prod"))
        result = _invoke(fake_cluster, "restart", "Deployment", "api", "-n", "prod")
        assert result.exit_code == 0, result.output
        annotations = fake_cluster.objects[("Deployment", "prod", "api")]["spec"]["template"]["metadata"]["annotations"]
        assert "kubectl.kubernetes.io/restartedAt" in annotations


class TestErrors:
    def test_not_found_exits_non_zero(self, fake_cluster: FakeCluster) -> None:
        result = _invoke(fake_cluster, "get", "Pod", "ghost", "-n", "prod")
        assert result.exit_code == 1
        assert "resource not found" in result.output
        assert fake_cluster.closed

    def test_unknown_kind(self, fake_cluster: FakeCluster) -> None:
        result = _invoke(fake_cluster, "list", "Widget")
        assert result.exit_code == 1
        assert "resource type not found" in result.output

    def test_invalid_manifest(self, fake_cluster: FakeCluster) -> None:
        result = _invoke(fake_cluster, "apply", "-f", "-", stdin="kind: ConfigMap\nmetadata: {}\n")
        assert result.exit_code == 1
        assert "metadata.name is required" in result.output
