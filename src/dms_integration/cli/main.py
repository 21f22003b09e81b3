"""dms-integration CLI — command-line interface for DMS Integration.

Commands:
    run             Start the controller (watches + periodic resync)
    reconcile       Run a single reconcile pass for one intent
    match           Show which ClusterDeployments an intent selects
    config show     Print the effective configuration
"""

from __future__ import annotations

import dataclasses
import json
import logging
import signal
import sys
from typing import Any

import click

from dms_integration import __version__
from dms_integration.config import OperatorConfig, load_config
from dms_integration.controller import Controller
from dms_integration.errors import ReconcileError
from dms_integration.matcher import match
from dms_integration.models import (
    IntentRecord,
    ManagedResource,
    ReconcileRequest,
    ReconcileStatus,
)
from dms_integration.reconciler import Reconciler
from dms_integration.snitch.client import ClientFactory, default_client_factory
from dms_integration.store.base import CLUSTER_DEPLOYMENT, INTENT, ObjectStore
from dms_integration.store.kubernetes import KubernetesObjectStore, build_api_client

logger = logging.getLogger(__name__)


# --- Shared options ---


def _common_options(fn: Any) -> Any:
    options = [
        click.option("--config", "config_path", default=None,
                     help="Path to dms-integration.yaml"),
        click.option("--kubeconfig", default=None, help="Path to kubeconfig file"),
        click.option("--context", default=None, help="Kubeconfig context"),
        click.option("--in-cluster", is_flag=True, default=None,
                     help="Use in-cluster service account config"),
        click.option("--restricted/--no-restricted", default=None,
                     help="FedRAMP naming (overrides config and FEDRAMP env)"),
        click.option("--log-level", default=None, help="Logging level (e.g. DEBUG)"),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _load(
    config_path: str | None,
    kubeconfig: str | None,
    context: str | None,
    in_cluster: bool | None,
    restricted: bool | None,
    log_level: str | None,
) -> OperatorConfig:
    """Load config, apply CLI overrides, configure logging."""
    try:
        cfg = load_config(config_path)
    except (OSError, ValueError) as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)

    overrides: dict[str, Any] = {
        "kubeconfig": kubeconfig,
        "context": context,
        "in_cluster": in_cluster,
        "restricted_mode": restricted,
        "log_level": log_level.upper() if log_level else None,
    }
    cfg = dataclasses.replace(cfg, **{k: v for k, v in overrides.items() if v is not None})

    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return cfg


def _build_store(cfg: OperatorConfig) -> ObjectStore:
    api_client = build_api_client(
        kubeconfig=cfg.kubeconfig, context=cfg.context, in_cluster=cfg.in_cluster,
    )
    return KubernetesObjectStore(api_client)


def _client_factory(cfg: OperatorConfig) -> ClientFactory:
    return default_client_factory(cfg.api_base_url, cfg.api_timeout)


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """DMS Integration: Dead Man's Snitch monitors for Hive clusters."""


# --- run command ---


@cli.command()
@_common_options
def run(
    config_path: str | None,
    kubeconfig: str | None,
    context: str | None,
    in_cluster: bool | None,
    restricted: bool | None,
    log_level: str | None,
) -> None:
    """Start the controller and run until interrupted."""
    cfg = _load(config_path, kubeconfig, context, in_cluster, restricted, log_level)
    if cfg.restricted_mode:
        logger.info("Running in FedRAMP mode")

    store = _build_store(cfg)
    reconciler = Reconciler.from_config(store, cfg, _client_factory(cfg))
    controller = Controller(
        store,
        reconciler.reconcile,
        watch=getattr(store, "watch", None),
        resync_period=cfg.resync_period,
    )

    def _shutdown(signum: int, frame: Any) -> None:
        logger.info("Received signal %d, shutting down", signum)
        controller.stop()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)
    controller.run()


# --- reconcile command ---


@cli.command()
@click.argument("namespace")
@click.argument("name")
@_common_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def reconcile(
    namespace: str,
    name: str,
    config_path: str | None,
    kubeconfig: str | None,
    context: str | None,
    in_cluster: bool | None,
    restricted: bool | None,
    log_level: str | None,
    json_output: bool,
) -> None:
    """Run one reconcile pass for the intent NAMESPACE/NAME."""
    cfg = _load(config_path, kubeconfig, context, in_cluster, restricted, log_level)
    store = _build_store(cfg)
    reconciler = Reconciler.from_config(store, cfg, _client_factory(cfg))

    result = reconciler.reconcile(ReconcileRequest(namespace=namespace, name=name))

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif result.status == ReconcileStatus.SUCCESS:
        click.echo(click.style("OK", fg="green", bold=True) + f"  {namespace}/{name}")
    else:
        color = "yellow" if result.status == ReconcileStatus.RETRY else "red"
        click.echo(
            click.style(result.status.upper(), fg=color, bold=True)
            + f"  {namespace}/{name}: {result.error}"
        )

    if result.status != ReconcileStatus.SUCCESS:
        sys.exit(1)


# --- match command ---


@cli.command("match")
@click.argument("namespace")
@click.argument("name")
@_common_options
@click.option("--json-output", is_flag=True, help="Output as JSON")
def match_clusters(
    namespace: str,
    name: str,
    config_path: str | None,
    kubeconfig: str | None,
    context: str | None,
    in_cluster: bool | None,
    restricted: bool | None,
    log_level: str | None,
    json_output: bool,
) -> None:
    """List the ClusterDeployments the intent NAMESPACE/NAME selects."""
    cfg = _load(config_path, kubeconfig, context, in_cluster, restricted, log_level)
    store = _build_store(cfg)

    try:
        intent = IntentRecord.from_object(store.get(INTENT, namespace, name))
        resources = [ManagedResource.from_object(o) for o in store.list(CLUSTER_DEPLOYMENT)]
        matched = match(intent, resources)
    except (ReconcileError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if json_output:
        data = [
            {
                "namespace": r.namespace,
                "name": r.name,
                "installed": r.installed,
                "power_state": str(r.power_state),
                "guarded": intent.finalizer in r.metadata.finalizers,
            }
            for r in matched
        ]
        click.echo(json.dumps(data, indent=2))
        return

    if not matched:
        click.echo("No ClusterDeployments matched.")
        return
    for r in matched:
        state = "installed" if r.installed else "installing"
        click.echo(f"  {r.namespace}/{r.name}  [{state}, {r.power_state}]")
    click.echo(f"\n{len(matched)} ClusterDeployment(s) matched.")


# --- config commands ---


@cli.group("config")
def config_group() -> None:
    """Inspect configuration."""


@config_group.command("show")
@click.option("--config", "config_path", default=None, help="Path to dms-integration.yaml")
def config_show(config_path: str | None) -> None:
    """Print the effective configuration as JSON."""
    try:
        cfg = load_config(config_path)
    except (OSError, ValueError) as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)
    data = dataclasses.asdict(cfg)
    data["config_path"] = str(cfg.config_path) if cfg.config_path else None
    click.echo(json.dumps(data, indent=2))


if __name__ == "__main__":
    cli()
