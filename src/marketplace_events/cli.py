"""
Marketplace Events CLI

Operator commands for the event bus:
- list the registered event patterns
- check broker connectivity with the current configuration
- emit a single event by hand
"""

from __future__ import annotations

import asyncio
import json
import sys

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .bus import EventBus
from .config import EventBusSettings
from .contracts.catalog import EVENT_REGISTRY
from .contracts.envelope import dump_payload
from .exceptions import ContractError, EventBusError
from .identity import ServiceIdentity
from .observability.logging import configure_logging
from .transport.base import Transport
from .transport.redis_transport import RedisTransport

console = Console()


def _load_settings(ctx: click.Context) -> EventBusSettings:
    overrides = {}
    if ctx.obj.get("service_name"):
        overrides["service_name"] = ctx.obj["service_name"]
    return EventBusSettings(**overrides)


def _transport_for(ctx: click.Context, settings: EventBusSettings) -> Transport:
    # tests and embedding code may inject a transport through ctx.obj
    return ctx.obj.get("transport") or RedisTransport.from_settings(settings)


@click.group()
@click.version_option(version=__version__)
@click.option("--service-name", "-s", help="Service name used as the event source")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, service_name, verbose):
    """Marketplace event bus tools."""
    ctx.ensure_object(dict)
    ctx.obj["service_name"] = service_name
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option("--domain", "-d", help="Only show patterns of this domain")
def patterns(domain):
    """List registered event patterns."""
    names = EVENT_REGISTRY.patterns(domain)
    if not names:
        console.print(f"[yellow]No patterns registered for domain '{domain}'[/yellow]")
        return

    table = Table(title="Event patterns")
    table.add_column("Pattern", style="cyan")
    table.add_column("Payload", style="green")
    table.add_column("Description", style="white")

    for name in names:
        contract = EVENT_REGISTRY.get(name)
        table.add_row(name, contract.payload_model.__name__, contract.description)

    console.print(table)
    console.print(f"{len(names)} pattern(s)")


@cli.command()
@click.pass_context
def check(ctx):
    """Check that the configured broker is reachable."""
    settings = _load_settings(ctx)
    identity = ServiceIdentity.from_settings(settings)
    transport = _transport_for(ctx, settings)

    async def run_check() -> str | None:
        try:
            await transport.connect()
            await transport.ping()
        except EventBusError as e:
            return str(e)
        finally:
            await transport.close()
        return None

    error = asyncio.run(run_check())
    if error:
        console.print(f"[red]✗ Broker {identity.redacted_broker_url} unreachable: {error}[/red]")
        sys.exit(1)
    console.print(f"[green]✓ Broker {identity.redacted_broker_url} reachable[/green]")


@cli.command()
@click.argument("pattern")
@click.argument("payload")
@click.option("--tenant-id", help="Tenant the event belongs to")
@click.option("--correlation-id", help="Correlation id to attach")
@click.option("--validate", is_flag=True, help="Validate the payload against the registered model")
@click.pass_context
def emit(ctx, pattern, payload, tenant_id, correlation_id, validate):
    """Emit PATTERN with a JSON PAYLOAD."""
    try:
        data = json.loads(payload)
    except ValueError as e:
        console.print(f"[red]Payload is not valid JSON: {e}[/red]")
        sys.exit(2)

    settings = _load_settings(ctx)
    if ctx.obj.get("verbose"):
        configure_logging(settings.service_name, "DEBUG", json_logs=False, stream=sys.stderr)

    try:
        if validate:
            data = EVENT_REGISTRY.validate_payload(pattern, data)
        else:
            EVENT_REGISTRY.get(pattern)
            data = dump_payload(data)
    except ContractError as e:
        console.print(f"[red]Invalid event: {e}[/red]")
        sys.exit(2)

    settings = settings.model_copy(update={"validate_payloads": validate, "retry_attempts": 0})
    bus = EventBus(settings, transport=_transport_for(ctx, settings))

    async def run_emit() -> bool:
        if not await bus.start():
            await bus.stop()
            return False
        bus.emit(pattern, data, correlation_id=correlation_id, tenant_id=tenant_id)
        await bus.stop()
        return bus.metrics.sample("marketplace_events_events_emitted_total", pattern=pattern) > 0

    if not asyncio.run(run_emit()):
        console.print(f"[red]✗ Could not publish {pattern} to {bus.identity.redacted_broker_url}[/red]")
        sys.exit(1)
    console.print(f"[green]✓ Emitted {pattern}[/green]")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
