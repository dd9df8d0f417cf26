"""CLI entry point for inspecting and driving membership streams."""

from __future__ import annotations

import asyncio
import dataclasses
import json
from typing import Any

import click
from pydantic import ValidationError

from .core.config import Settings, load_settings
from .core.errors import MembershipError
from .core.ids import derive_identity
from .infrastructure.event_store import StoredEvent


def _service(settings: Settings):
    from .application.service import MembershipService

    return MembershipService.from_settings(settings)


def _stored_to_json(stored: StoredEvent) -> dict[str, Any]:
    fields = dataclasses.asdict(stored.event)
    fields["timestamp"] = stored.event.timestamp.isoformat()
    return {
        "version": stored.aggregate_version,
        "type": type(stored.event).__name__,
        "fields": fields,
    }


@click.group()
@click.option("--config", default=None, help="Config file path (TOML)")
@click.pass_context
def main(ctx: click.Context, config: str | None) -> None:
    """Membership event log tools."""
    from .observability.logger import setup_logging

    settings = load_settings(config)
    setup_logging(
        level=settings.observability.log_level,
        format=settings.observability.log_format,
    )
    ctx.obj = settings


@main.command()
@click.argument("customer_id")
def identity(customer_id: str) -> None:
    """Print the aggregate identity for a customer."""
    click.echo(derive_identity(customer_id))


@main.command()
@click.argument("customer_id")
@click.pass_obj
def history(settings: Settings, customer_id: str) -> None:
    """Print a customer's stored events in order."""
    service = _service(settings)
    stored = asyncio.run(service.event_log.load_history(derive_identity(customer_id)))
    for event in stored:
        click.echo(json.dumps(_stored_to_json(event)))


@main.command()
@click.argument("customer_id")
@click.pass_obj
def state(settings: Settings, customer_id: str) -> None:
    """Print a customer's projected membership state."""
    service = _service(settings)
    aggregate = asyncio.run(service.retrieve(customer_id))
    click.echo(json.dumps(dataclasses.asdict(aggregate.state()), indent=2))


@main.command()
@click.argument("topic")
@click.argument("payload_file", type=click.File("r"))
@click.pass_obj
def apply(settings: Settings, topic: str, payload_file: Any) -> None:
    """Feed a webhook payload (JSON file) through the matching command."""
    payload = json.load(payload_file)
    service = _service(settings)
    try:
        stored = asyncio.run(service.handle_webhook(topic, payload))
    except (MembershipError, ValidationError) as exc:
        raise click.ClickException(str(exc)) from exc
    for event in stored:
        click.echo(json.dumps(_stored_to_json(event)))
