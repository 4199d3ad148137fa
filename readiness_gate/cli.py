"""Main CLI entry point for the readiness gate controller."""

import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from readiness_gate.exceptions import ReadinessGateError
from readiness_gate.logging_config import get_logger, setup_logging

app = typer.Typer(
    name="readiness-gate",
    help="Taint nodes until their required daemonset pods are ready",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)


def _fail(error: ReadinessGateError) -> None:
    console.print(f"[red]Error:[/red] {escape(error.message)}")
    if error.details:
        console.print(f"\n{escape(error.details)}")
    raise typer.Exit(code=1)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    logger.debug("Logging initialized")


@app.command()
def version() -> None:
    """Show version information."""
    from readiness_gate import __version__

    typer.echo(f"readiness-gate version {__version__}")


@app.command()
def check_config(
    config_path: str = typer.Argument(..., help="Path to the YAML or JSON configuration file"),
) -> None:
    """
    Validate a configuration file.

    Prints the watched daemonsets with the taint each one maps to, and the
    selector choosing which nodes are managed.
    """
    from readiness_gate.config import load_config
    from readiness_gate.taints import taint_key_for

    try:
        config = load_config(config_path)
    except ReadinessGateError as e:
        _fail(e)

    table = Table(title="Watched Daemonsets")
    table.add_column("Namespace", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Taint Key", style="yellow")
    for watch in config.daemonsets:
        table.add_row(watch.namespace, watch.name, taint_key_for(watch))

    console.print(table)
    console.print(f"\n[bold]Node selector:[/bold] {config.node_selector}")
    console.print("[green]✓ Configuration is valid[/green]")


@app.command()
def plan(
    node_name: str = typer.Argument(..., help="Name of the node to evaluate"),
    config_path: str = typer.Option(..., "--config", "-c", help="Path to the configuration file"),
    kubeconfig: str | None = typer.Option(
        None, "--kubeconfig", help="Path to kubeconfig (default: in-cluster, then ~/.kube/config)"
    ),
) -> None:
    """
    Show the taint changes a node needs, without applying them.

    Examples:
        readiness-gate plan worker-1 --config config.yaml
    """
    from readiness_gate.config import load_config
    from readiness_gate.kube import KubernetesClusterClient, load_kube_client
    from readiness_gate.reconciler import ReconcileOutcome, Reconciler

    try:
        config = load_config(config_path)
        cluster = KubernetesClusterClient(load_kube_client(kubeconfig))
    except ReadinessGateError as e:
        _fail(e)

    result = Reconciler(cluster, config).plan(node_name)

    if result.outcome is ReconcileOutcome.FAILED:
        _fail(result.error)
    if result.outcome is ReconcileOutcome.NOT_FOUND:
        console.print(f"[yellow]Node {node_name} not found[/yellow]")
        raise typer.Exit(code=1)
    if result.outcome is ReconcileOutcome.OUT_OF_SCOPE:
        console.print(f"Node {node_name} does not match the node selector; it is not managed")
        return

    table = Table(title=f"Taints on {node_name}")
    table.add_column("Taint", style="cyan")
    table.add_column("Change")
    for taint in result.node.taints:
        change = "[green]add[/green]" if taint.key in result.changes.added else ""
        table.add_row(str(taint), change)
    for key in result.changes.removed:
        table.add_row(key, "[red]remove[/red]")
    console.print(table)

    if result.first_ready:
        console.print(f"\n[bold]First ready:[/bold] {result.first_ready}")
    if result.outcome is ReconcileOutcome.NO_CHANGE:
        console.print("\n[green]✓ Node is up to date[/green]")
    else:
        console.print(f"\n[yellow]Pending changes:[/yellow] {escape(str(result.changes))}")


@app.command()
def run(
    config_path: str = typer.Option(..., "--config", "-c", help="Path to the configuration file"),
    kubeconfig: str | None = typer.Option(
        None, "--kubeconfig", help="Path to kubeconfig (default: in-cluster, then ~/.kube/config)"
    ),
    workers: int = typer.Option(1, "--workers", "-w", min=1, help="Concurrent reconcile workers"),
    metrics_port: int = typer.Option(
        8080, "--metrics-port", help="Port for Prometheus metrics (0 disables)"
    ),
    events: bool = typer.Option(
        True, "--events/--no-events", help="Record Kubernetes events when taints change"
    ),
) -> None:
    """
    Run the controller until interrupted.

    Watches nodes and the configured daemonset pods, and keeps every managed
    node's readiness taints up to date.
    """
    from prometheus_client import start_http_server

    from readiness_gate.config import load_config
    from readiness_gate.controller import Controller
    from readiness_gate.kube import KubernetesClusterClient, load_kube_client
    from readiness_gate.reconciler import Reconciler
    from readiness_gate.reporting import (
        CompositeReporter,
        EventReporter,
        LoggingReporter,
        MetricsReporter,
    )

    try:
        config = load_config(config_path)
        api = load_kube_client(kubeconfig)
    except ReadinessGateError as e:
        _fail(e)

    cluster = KubernetesClusterClient(api)
    metrics = MetricsReporter()
    reporters = [LoggingReporter(), metrics]
    if events:
        reporters.append(EventReporter(cluster))

    if metrics_port:
        start_http_server(metrics_port, registry=metrics.registry)
        logger.info(f"Serving metrics on port {metrics_port}")

    reconciler = Reconciler(cluster, config, reporter=CompositeReporter(reporters))
    controller = Controller(api, reconciler, config, workers=workers)

    def handle_signal(signum, frame):
        controller.stop()

    signal.signal(signal.SIGTERM, handle_signal)
    try:
        controller.run()
    except KeyboardInterrupt:
        controller.stop()
    console.print("Controller stopped")


if __name__ == "__main__":
    app()
