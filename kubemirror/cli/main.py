"""Operator CLI.

Each command opens a connection, runs one operation against the live API
and closes it again.  The watch fan-out is not started: a one-shot command
would pay for a full list of every kind to answer a single read.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, TextIO

import click
import yaml

from kubemirror.access.service import ResourceAccess
from kubemirror.cluster.connection import ClusterConnection
from kubemirror.config import load_config
from kubemirror.errors import AccessError
from kubemirror.observability.logging import setup_logging


@click.group()
@click.option("--kubeconfig", envvar="KUBEMIRROR_KUBECONFIG", default="", help="Path to a kubeconfig file")
@click.option("--timeout", type=float, default=30.0, show_default=True, help="Per-command deadline in seconds")
@click.option(
    "-o",
    "--output",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    show_default=True,
    help="Output format for structured results",
)
@click.option("--log-level", default="warning", show_default=True, help="debug, info, warning or error")
@click.pass_context
def cli(ctx: click.Context, kubeconfig: str, timeout: float, output: str, log_level: str) -> None:
    """kubemirror - read and write any Kubernetes kind by name."""
    ctx.ensure_object(dict)
    ctx.obj.setdefault("connect", ClusterConnection.connect)
    ctx.obj["kubeconfig"] = kubeconfig
    ctx.obj["timeout"] = timeout
    ctx.obj["output"] = output
    setup_logging(log_level, json_output=False)


@cli.command("get")
@click.argument("kind")
@click.argument("name")
@click.option("-n", "--namespace", default="", help="Namespace of a namespaced kind")
@click.pass_context
def get_resource(ctx: click.Context, kind: str, name: str, namespace: str) -> None:
    """Print one object."""
    timeout = ctx.obj["timeout"]
    obj = _run(ctx, lambda access: access.get(kind, name, namespace, timeout=timeout))
    _emit(ctx, obj)


@cli.command("list")
@click.argument("kind")
@click.option("-n", "--namespace", default="", help="Restrict to one namespace")
@click.option("-l", "--selector", "label_selector", default="", help="Label selector")
@click.option("--field-selector", default="", help="Field selector")
@click.pass_context
def list_resources(ctx: click.Context, kind: str, namespace: str, label_selector: str, field_selector: str) -> None:
    """List name, namespace and labels of every matching object."""
    timeout = ctx.obj["timeout"]
    result = _run(
        ctx,
        lambda access: access.list(kind, namespace, label_selector, field_selector, timeout=timeout),
    )
    _emit(ctx, [summary.to_dict() for summary in result.items])


@cli.command("apply")
@click.option("-f", "--filename", "manifest_file", type=click.File("r"), required=True, help="Manifest, - for stdin")
@click.option("--kind", default="", help="Override the manifest's kind")
@click.option("-n", "--namespace", default="", help="Override the manifest's namespace")
@click.pass_context
def apply_manifest(ctx: click.Context, manifest_file: TextIO, kind: str, namespace: str) -> None:
    """Create or update one object from a YAML or JSON manifest."""
    timeout = ctx.obj["timeout"]
    manifest = manifest_file.read()
    obj = _run(ctx, lambda access: access.upsert(kind, namespace, manifest, timeout=timeout))
    click.echo(f"{obj.get('kind', kind)}/{(obj.get('metadata') or {}).get('name', '')} applied")


@cli.command("delete")
@click.argument("kind")
@click.argument("name")
@click.option("-n", "--namespace", default="")
@click.pass_context
def delete_resource(ctx: click.Context, kind: str, name: str, namespace: str) -> None:
    """Delete one object."""
    timeout = ctx.obj["timeout"]
    _run(ctx, lambda access: access.delete(kind, name, namespace, timeout=timeout))
    click.echo(f"{kind}/{name} deleted")


@cli.command("restart")
@click.argument("kind")
@click.argument("name")
@click.option("-n", "--namespace", default="")
@click.pass_context
def restart_resource(ctx: click.Context, kind: str, name: str, namespace: str) -> None:
    """Roll the pods of a workload by stamping its pod template."""
    timeout = ctx.obj["timeout"]
    _run(ctx, lambda access: access.rollout_restart(kind, name, namespace, timeout=timeout))
    click.echo(f"{kind}/{name} restarted")


@cli.command("logs")
@click.argument("pod")
@click.option("-n", "--namespace", default="default", show_default=True)
@click.option("-c", "--container", default="", help="Container name; all containers when omitted")
@click.option("--tail", "tail_lines", type=int, default=100, show_default=True, help="Lines per container")
@click.pass_context
def pod_logs(ctx: click.Context, pod: str, namespace: str, container: str, tail_lines: int) -> None:
    """Print the tail of a pod's logs."""
    timeout = ctx.obj["timeout"]
    text = _run(ctx, lambda access: access.logs(namespace, pod, container, tail_lines, timeout=timeout))
    click.echo(text, nl=not text.endswith("\n"))


@cli.command("api-resources")
@click.option("--namespaced/--no-namespaced", default=True, help="Include namespaced types")
@click.option("--cluster-scoped/--no-cluster-scoped", default=True, help="Include cluster-scoped types")
@click.pass_context
def api_resources(ctx: click.Context, namespaced: bool, cluster_scoped: bool) -> None:
    """List the resource types the cluster serves."""
    listing = _run(ctx, lambda access: access.api_resources(namespaced, cluster_scoped))
    _emit(ctx, listing)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(ctx: click.Context, operation: Callable[[ResourceAccess], Awaitable[Any]]) -> Any:
    """Connect, run ``operation`` against a fan-out-less access layer, close."""
    try:
        config = load_config()
    except ValueError as exc:
        raise click.ClickException(f"invalid configuration: {exc}") from exc
    config.watch.enabled = False

    async def _invoke() -> Any:
        connection = await ctx.obj["connect"](
            kubeconfig=ctx.obj["kubeconfig"],
            request_timeout=ctx.obj["timeout"],
        )
        try:
            return await operation(ResourceAccess(connection, config))
        finally:
            await connection.close()

    try:
        return asyncio.run(_invoke())
    except AccessError as exc:
        raise click.ClickException(str(exc)) from exc


def _emit(ctx: click.Context, data: Any) -> None:
    if ctx.obj["output"] == "json":
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(yaml.safe_dump(data, default_flow_style=False, sort_keys=False), nl=False)
