"""CLI entry-point for the traefik-proxmox provider."""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from traefik_proxmox_provider import __version__
from traefik_proxmox_provider.builder import generate_configuration
from traefik_proxmox_provider.config import Settings
from traefik_proxmox_provider.discovery import DiscoveryError, get_workload_map
from traefik_proxmox_provider.provider import Provider, ProviderError
from traefik_proxmox_provider.renderer import (
    OUTPUT_FORMATS,
    file_provider_format,
    format_from_path,
    render_payload,
    workload_rows,
    write_payload,
)

console = Console(stderr=True)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quieten noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _connection_options(func):
    options = [
        click.option("--api-endpoint", default="", help="Proxmox API URL (or set PROXMOX_API_ENDPOINT)."),
        click.option("--api-token-id", default="", help="API token ID (or set PROXMOX_API_TOKEN_ID)."),
        click.option("--api-token", default="", help="API token secret (or set PROXMOX_API_TOKEN)."),
        click.option(
            "--insecure", is_flag=True, help="Skip TLS certificate validation of the Proxmox API."
        ),
        click.option("--poll-interval", default="", help="Poll interval, e.g. 30s (minimum 5s)."),
        click.option("--verbose", "-v", is_flag=True, help="Enable debug logging."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_settings(
    api_endpoint: str,
    api_token_id: str,
    api_token: str,
    insecure: bool,
    poll_interval: str,
    verbose: bool,
) -> Settings:
    settings = Settings(verbose=verbose)
    if insecure:
        settings.api_validate_ssl = False
    if api_endpoint:
        settings.api_endpoint = api_endpoint
    if api_token_id:
        settings.api_token_id = api_token_id
    if api_token:
        settings.api_token = api_token
    if poll_interval:
        settings.poll_interval = poll_interval
    if verbose:
        settings.api_logging = "debug"
    return settings


def _start_provider(settings: Settings) -> Provider:
    try:
        return Provider(settings)
    except (ValueError, ProviderError) as exc:
        console.print(f"[red bold]Error:[/red bold] {exc}")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="traefik-proxmox")
def main() -> None:
    """Traefik provider generating dynamic configuration from Proxmox VE workloads."""


@main.command()
@_connection_options
@click.option("--output", "-o", "output", default="", help="Write to a file instead of stdout.")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(OUTPUT_FORMATS),
    default=None,
    help="Output format (default: from --output suffix, else json).",
)
def generate(
    api_endpoint: str,
    api_token_id: str,
    api_token: str,
    insecure: bool,
    poll_interval: str,
    verbose: bool,
    output: str,
    fmt: str | None,
) -> None:
    """Scan the cluster once and print the generated configuration."""
    _configure_logging(verbose)
    settings = _build_settings(api_endpoint, api_token_id, api_token, insecure, poll_interval, verbose)
    provider = _start_provider(settings)

    try:
        if output:
            path = Path(output).resolve()
            provider.update_configuration(
                lambda payload: write_payload(payload, path, fmt or format_from_path(path))
            )
            console.print(f"[green bold]Done![/green bold] Configuration written to {path}")
        else:
            output_format = fmt or settings.output_format
            provider.update_configuration(
                lambda payload: click.echo(render_payload(payload, output_format), nl=False)
            )
    except DiscoveryError as exc:
        console.print(f"[red bold]Error:[/red bold] {exc}")
        sys.exit(1)
    finally:
        provider.client.close()


@main.command()
@_connection_options
def scan(
    api_endpoint: str,
    api_token_id: str,
    api_token: str,
    insecure: bool,
    poll_interval: str,
    verbose: bool,
) -> None:
    """List Traefik-enabled workloads and the configuration they produce."""
    _configure_logging(verbose)
    settings = _build_settings(api_endpoint, api_token_id, api_token, insecure, poll_interval, verbose)
    provider = _start_provider(settings)

    try:
        workloads_by_node = get_workload_map(provider.client)
    except DiscoveryError as exc:
        console.print(f"[red bold]Error:[/red bold] {exc}")
        sys.exit(1)
    finally:
        provider.client.close()

    rows = workload_rows(workloads_by_node)
    if not rows:
        console.print("[yellow]No Traefik-enabled workloads found.[/yellow]")
        sys.exit(0)

    table = Table(title="Traefik-enabled workloads", show_lines=True)
    for column in ("Node", "ID", "Name", "Kind", "Addresses", "Labels"):
        table.add_column(column, style="bold" if column == "Name" else None)
    for row in rows:
        table.add_row(
            row["node"], row["id"], row["name"], row["kind"], row["addresses"], row["labels"]
        )
    console.print(table)

    summary = generate_configuration(workloads_by_node).summary()
    console.print(
        "\n  HTTP: [green]{http_routers}[/green] routers / [green]{http_services}[/green] services  "
        "TCP: [cyan]{tcp_routers}[/cyan] / [cyan]{tcp_services}[/cyan]  "
        "UDP: [cyan]{udp_routers}[/cyan] / [cyan]{udp_services}[/cyan]".format(**summary)
    )


@main.command()
@_connection_options
@click.option(
    "--output",
    "-o",
    "output",
    required=True,
    help="YAML file (.yml/.yaml) rewritten with every new snapshot.",
)
def watch(
    api_endpoint: str,
    api_token_id: str,
    api_token: str,
    insecure: bool,
    poll_interval: str,
    verbose: bool,
    output: str,
) -> None:
    """Poll the cluster and keep a Traefik file-provider config up to date.

    Examples:

      traefik-proxmox watch -o /etc/traefik/dynamic/proxmox.yml

      traefik-proxmox watch -o proxmox.yaml --poll-interval 1m --insecure
    """
    _configure_logging(verbose)
    path = Path(output).resolve()
    try:
        output_format = file_provider_format(path)
    except ValueError as exc:
        console.print(f"[red bold]Error:[/red bold] {exc}")
        sys.exit(1)

    settings = _build_settings(api_endpoint, api_token_id, api_token, insecure, poll_interval, verbose)
    provider = _start_provider(settings)

    console.print(
        Panel(
            f"Polling every {settings.poll_interval}  →  {path}",
            style="bold cyan",
        )
    )

    provider.provide(lambda payload: write_payload(payload, path, output_format))
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        console.print("\n[dim]Stopping...[/dim]")
    finally:
        provider.close()


if __name__ == "__main__":
    main()
