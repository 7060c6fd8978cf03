"""Main CLI entry point for the local bench."""

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from local_bench.exceptions import (
    BootstrapError,
    LocalBenchError,
    PermissionDeniedError,
    ReloadUnavailableError,
)
from local_bench.logging_config import get_logger, setup_logging
from local_bench.models.cluster import BootstrapReport
from local_bench.settings import Settings

app = typer.Typer(
    name="k8s-local-bench",
    help="Run a local kind cluster with a load balancer and dnsmasq hostnames",
    add_completion=False,
)
cluster_app = typer.Typer(help="Create and destroy the local cluster")
lb_app = typer.Typer(help="Manage the cloud-provider-kind load balancer")
dns_app = typer.Typer(help="Manage dnsmasq address mappings")
argocd_app = typer.Typer(help="Install Argo CD into the cluster")
app.add_typer(cluster_app, name="cluster")
app.add_typer(lb_app, name="lb")
app.add_typer(dns_app, name="dns")
app.add_typer(argocd_app, name="argocd")

console = Console()
logger = get_logger(__name__)


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
    config: str | None = typer.Option(
        None, "--config", "-c", help="Settings file (default: ~/.local-bench.yaml)"
    ),
    directory: str | None = typer.Option(
        None, "--directory", "-d", help="Directory for kind configs and kubeconfigs"
    ),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    ctx.obj = {
        "config": Path(config) if config else None,
        "directory": directory,
        "verbose": verbose,
        "log_file": log_path,
    }
    logger.debug("Logging initialized")


def _load_settings(ctx: typer.Context, **overrides) -> Settings:
    """Resolve settings for a command, exiting on configuration errors."""
    options = ctx.obj or {}
    overrides.setdefault("directory", options.get("directory"))
    try:
        settings = Settings.load(options.get("config"), overrides)
    except LocalBenchError as e:
        _print_error(e, "Configuration Error")
        raise typer.Exit(code=1)

    if settings.debug and not options.get("verbose"):
        setup_logging(verbose=True, log_file=options.get("log_file"))
    return settings


def _print_error(error: LocalBenchError, title: str = "Error") -> None:
    console.print(f"[red]{title}:[/red] {escape(error.message)}")
    if error.details:
        console.print(f"\n{escape(error.details)}")


def _print_unexpected(error: Exception) -> None:
    logger.error(f"Unexpected error: {error}", exc_info=True)
    console.print(f"[red]Unexpected error:[/red] {escape(str(error))}")
    console.print("\nRun with --verbose --log-file debug.log for more details")


@app.command()
def version() -> None:
    """Show version information."""
    from local_bench import __version__

    typer.echo(f"k8s-local-bench version {__version__}")


@cluster_app.command("create")
def cluster_create(
    ctx: typer.Context,
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="Name of the cluster"),
    kind_config: str | None = typer.Option(
        None,
        "--kind-config",
        "-k",
        help="Path to kind config file (searched in the directory if unspecified)",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
    start_lb: bool | None = typer.Option(
        None, "--start-lb/--no-start-lb", help="Start the local load balancer (cloud-provider-kind)"
    ),
    lb_foreground: bool | None = typer.Option(
        None,
        "--lb-foreground/--lb-background",
        help="Run the load balancer in the foreground (blocks until it exits)",
    ),
    reuse_lb: bool | None = typer.Option(
        None,
        "--reuse-lb/--no-reuse-lb",
        help="Skip starting the load balancer if one is already running for the cluster",
    ),
    domain: str | None = typer.Option(None, "--domain", help="Domain mapped in dnsmasq"),
    namespace: str | None = typer.Option(
        None, "--namespace", "-n", help="Namespace of the LoadBalancer service"
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", help="Seconds to wait for a load balancer address"
    ),
    poll_interval: float | None = typer.Option(
        None, "--poll-interval", help="Seconds between service queries"
    ),
    dnsmasq_config: str | None = typer.Option(
        None, "--dnsmasq-config", help="dnsmasq config file to edit"
    ),
) -> None:
    """
    Create a local kind cluster and wire it into dnsmasq.

    Creates the cluster, starts cloud-provider-kind, waits for the ingress
    LoadBalancer service to get an address and maps the bench domain to it.
    On failure, anything already started is left running.
    """
    from local_bench.bootstrap import ClusterBootstrap

    settings = _load_settings(
        ctx,
        cluster_name=cluster_name,
        kind_config=kind_config,
        start_balancer=start_lb,
        balancer_foreground=lb_foreground,
        reuse_running_balancer=reuse_lb,
        domain=domain,
        ingress_namespace=namespace,
        address_timeout=timeout,
        poll_interval=poll_interval,
        dnsmasq_config=dnsmasq_config,
    )

    if not yes:
        confirm = typer.confirm(f"Proceed to create kind cluster '{settings.cluster_name}'?")
        if not confirm:
            console.print("Operation cancelled")
            raise typer.Exit(code=0)

    console.print(f"[bold cyan]Creating local cluster '{settings.cluster_name}'...[/bold cyan]")

    try:
        report = ClusterBootstrap(settings).run()
    except BootstrapError as e:
        state = e.failed_state.value if e.failed_state else "unknown"
        _print_error(e, f"Bootstrap failed during {state}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cluster creation interrupted by user[/yellow]")
        console.print("Manual cleanup may be required: k8s-local-bench cluster destroy")
        raise typer.Exit(code=130)
    except Exception as e:
        _print_unexpected(e)
        raise typer.Exit(code=1)

    if report.balancer_exited:
        console.print("[yellow]Load balancer run completed; DNS was not configured[/yellow]")
        return

    _display_cluster_info(report, settings)


def _display_cluster_info(report: BootstrapReport, settings: Settings) -> None:
    console.print(
        f"\n[green]✓[/green] Cluster '{report.cluster.name}' created successfully"
        + (" [yellow](with warnings)[/yellow]" if report.degraded else "")
    )

    table = Table(title="Local Bench")
    table.add_column("Item", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Kubeconfig", str(report.cluster.kubeconfig_path))
    if report.external_ip:
        table.add_row("Load balancer IP", report.external_ip)
        table.add_row("DNS", f"{settings.domain} -> {report.external_ip}")
    if report.balancer:
        table.add_row("Load balancer pid", str(report.balancer.pid))
        table.add_row("Load balancer log", str(report.balancer.log_file_path))
    for url in report.urls:
        table.add_row("Service URL", url)
    console.print(table)

    for warning in report.warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")


@cluster_app.command("destroy")
def cluster_destroy(
    ctx: typer.Context,
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="Name of the cluster"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Don't ask for confirmation"),
) -> None:
    """
    Delete the local kind cluster and stop its load balancer.
    """
    from local_bench.balancer import BalancerSupervisor
    from local_bench.kind import KindClient

    settings = _load_settings(ctx, cluster_name=cluster_name)
    name = settings.cluster_name

    if not yes:
        confirm = typer.confirm(f"Delete kind cluster '{name}'?")
        if not confirm:
            console.print("Operation cancelled")
            raise typer.Exit(code=0)

    try:
        try:
            if BalancerSupervisor().stop(name):
                console.print("[green]✓[/green] Load balancer stopped")
            else:
                console.print("No running load balancer recorded for this cluster")
        except PermissionDeniedError as e:
            console.print(f"[yellow]Warning:[/yellow] {escape(e.message)}")

        KindClient().delete(name)
        console.print(f"[green]✓[/green] Cluster '{name}' deleted")
    except LocalBenchError as e:
        _print_error(e)
        raise typer.Exit(code=1)
    except Exception as e:
        _print_unexpected(e)
        raise typer.Exit(code=1)


@lb_app.command("start")
def lb_start(
    ctx: typer.Context,
    cluster_name: str | None = typer.Option(None, "--cluster-name", help="Name of the cluster"),
    foreground: bool = typer.Option(
        False, "--foreground", help="Run attached to the terminal until it exits"
    ),
) -> None:
    """
    Start cloud-provider-kind for the cluster, installing it with go if missing.
    """
    from local_bench.balancer import BalancerSupervisor

    settings = _load_settings(ctx, cluster_name=cluster_name)
    supervisor = BalancerSupervisor()

    try:
        supervisor.ensure_installed()
        process = supervisor.start(settings.cluster_name, background=not foreground)
    except LocalBenchError as e:
        _print_error(e, "Load Balancer Error")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Load balancer interrupted by user[/yellow]")
        raise typer.Exit(code=130)

    if process is None:
        console.print("Load balancer run completed")
        return

    console.print(f"[green]✓[/green] Load balancer started in background (pid {process.pid})")
    console.print(f"  Log: {process.log_file_path}")


@app.command()
def services(
    ctx: typer.Context,
    namespace: str = typer.Option("default", "--namespace", "-n", help="Namespace to list"),
    service_type: str | None = typer.Option(
        None, "--type", "-t", help="Only show services of this type (e.g. LoadBalancer)"
    ),
    kubeconfig: str | None = typer.Option(
        None, "--kubeconfig", help="Kubeconfig (default: the bench cluster kubeconfig)"
    ),
) -> None:
    """
    List services in a namespace with their external addresses.
    """
    from kubernetes.client.rest import ApiException

    from local_bench.kube import ServiceLister

    settings = _load_settings(ctx)
    kubeconfig_path = Path(kubeconfig) if kubeconfig else settings.resolved_kubeconfig()
    if not kubeconfig and not kubeconfig_path.exists():
        kubeconfig_path = None

    try:
        records = ServiceLister(kubeconfig_path).list_services(namespace, service_type)
    except LocalBenchError as e:
        _print_error(e)
        raise typer.Exit(code=1)
    except ApiException as e:
        console.print(f"[red]Error:[/red] Failed to list services: {escape(str(e.reason))}")
        raise typer.Exit(code=1)
    except Exception as e:
        _print_unexpected(e)
        raise typer.Exit(code=1)

    if not records:
        console.print(f"[yellow]No services found in namespace {namespace}[/yellow]")
        return

    table = Table(title=f"Services in {namespace}")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Cluster IP", style="blue")
    table.add_column("External IPs", style="green")
    table.add_column("Ports", style="yellow")

    for record in sorted(records, key=lambda r: r.name):
        ports = ", ".join(f"{p.port}/{p.protocol}" for p in record.ports)
        table.add_row(
            record.name,
            record.type.value,
            record.cluster_ip or "None",
            ", ".join(record.external_ips) or "<pending>",
            ports,
        )

    console.print(table)


@dns_app.command("set")
def dns_set(
    ctx: typer.Context,
    domain: str = typer.Argument(..., help="Domain to map (subdomains resolve too)"),
    ip: str = typer.Argument(..., help="Address the domain resolves to"),
    dnsmasq_config: str | None = typer.Option(
        None, "--dnsmasq-config", help="dnsmasq config file to edit"
    ),
) -> None:
    """
    Map a domain to an IP in dnsmasq and reload it.
    """
    from local_bench.dnsmasq import DnsmasqClient

    settings = _load_settings(ctx, dnsmasq_config=dnsmasq_config)

    try:
        path = DnsmasqClient(settings.dnsmasq_config).ensure_domain_ip(domain, ip)
    except ReloadUnavailableError as e:
        console.print(f"[yellow]Warning:[/yellow] {escape(e.message)}")
        if e.details:
            console.print(f"\n{escape(e.details)}")
        return
    except LocalBenchError as e:
        _print_error(e, "DNS Error")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] {domain} -> {ip} ({path})")


@argocd_app.command("install")
def argocd_install(
    ctx: typer.Context,
    kubeconfig: str | None = typer.Option(
        None, "--kubeconfig", help="Kubeconfig (default: the bench cluster kubeconfig)"
    ),
    domain: str | None = typer.Option(None, "--domain", help="Domain for the Argo CD ingress"),
    mount: list[str] = typer.Option(
        [],
        "--mount",
        "-m",
        help="Repository mount for the repo server as name=host_path:mount_path (repeatable)",
    ),
) -> None:
    """
    Install or upgrade Argo CD with Helm.
    """
    from local_bench.argocd import ArgoCDInstaller, RepoMount

    settings = _load_settings(ctx, domain=domain)

    try:
        mounts = [RepoMount.parse(m) for m in mount]
    except ValueError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    kubeconfig_path = Path(kubeconfig) if kubeconfig else settings.resolved_kubeconfig()
    installer = ArgoCDInstaller(kubeconfig_path=kubeconfig_path, domain=settings.domain)

    try:
        release = installer.install_or_upgrade(mounts)
    except LocalBenchError as e:
        _print_error(e, "Argo CD Error")
        raise typer.Exit(code=1)

    console.print(f"[green]✓[/green] Argo CD installed: {release}")
    console.print(f"  URL: http://{installer.host}")


if __name__ == "__main__":
    app()
