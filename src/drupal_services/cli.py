"""CLI for the Drupal Services client: inspect and edit entities from a shell."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Coroutine
from dataclasses import replace
from pathlib import Path
from typing import Any

import click

from drupal_services import __version__
from drupal_services.client import DrupalClient
from drupal_services.config import (
    CONFIG_FILENAME,
    AuthConfig,
    ClientConfig,
    ConfigError,
    load_config,
    parse_config,
)
from drupal_services.core.logging import configure_logging
from drupal_services.core.telemetry import init_telemetry
from drupal_services.entities.types import EntityType, get_entity_type, list_entity_types
from drupal_services.errors import DrupalServicesError


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    envvar="DRUPAL_SERVICES_CONFIG",
    help=f"Path to {CONFIG_FILENAME} or a directory containing it",
)
@click.option("--app-root", envvar="DRUPAL_APP_ROOT", help="Services endpoint URL")
@click.option("--username", envvar="DRUPAL_USERNAME", help="Account name for login")
@click.option("--password", envvar="DRUPAL_PASSWORD", help="Account password for login")
@click.option("--log-level", default=None, help="Override the configured log level")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    app_root: str | None,
    username: str | None,
    password: str | None,
    log_level: str | None,
) -> None:
    """Drupal Services client: browse and edit site entities."""
    ctx.obj = {
        "config_path": config_path,
        "app_root": app_root,
        "username": username,
        "password": password,
        "log_level": log_level,
    }


def _resolve_config(ctx: click.Context) -> ClientConfig:
    """Build the effective config from the file and command-line overrides."""
    opts = ctx.obj
    try:
        if opts["config_path"] is not None:
            config = load_config(opts["config_path"])
            if opts["app_root"]:
                config = replace(config, app_root=opts["app_root"].rstrip("/"))
        elif opts["app_root"]:
            config = parse_config({"drupal": {"app_root": opts["app_root"]}})
        else:
            raise ConfigError(f"Provide --config ({CONFIG_FILENAME}) or --app-root")
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)

    if opts["username"] or opts["password"]:
        config = replace(
            config,
            auth=AuthConfig(
                username=opts["username"] or config.auth.username,
                password=opts["password"] or config.auth.password,
                revalidate_session=config.auth.revalidate_session,
            ),
        )
    if opts["log_level"]:
        config = replace(config, logging=replace(config.logging, level=opts["log_level"]))

    _configure_logging(config)
    return config


def _configure_logging(config: ClientConfig) -> None:
    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_root=config.logging.log_root,
        site_name=config.site_name,
    )
    init_telemetry("drupal-services")


def _build_client(config: ClientConfig) -> DrupalClient:
    return DrupalClient(config)


def _run(coro: Coroutine[Any, Any, None]) -> None:
    """Run *coro*, turning client errors into a clean exit status."""
    try:
        asyncio.run(coro)
    except DrupalServicesError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


async def _maybe_login(client: DrupalClient) -> None:
    if client.config.auth.username and client.config.auth.password:
        await client.login()


def _entity_type_or_exit(name: str) -> EntityType:
    try:
        return get_entity_type(name)
    except KeyError as exc:
        click.echo(exc.args[0], err=True)
        sys.exit(2)


@cli.command("types")
def types_cmd() -> None:
    """List the known entity types."""
    click.echo(f"{'Name':<22} {'Id':<6} {'Bundle':<26} {'Label'}")
    click.echo("-" * 70)
    for etype in list_entity_types():
        click.echo(
            f"{etype.name:<22} {etype.id_key:<6} {etype.bundle_key or '-':<26} {etype.label_key}"
        )


@cli.command()
@click.pass_context
def whoami(ctx: click.Context) -> None:
    """Log in and show the current user."""
    config = _resolve_config(ctx)
    if not (config.auth.username and config.auth.password):
        click.echo("whoami requires --username and --password (or [drupal.auth])", err=True)
        sys.exit(1)

    async def _whoami() -> None:
        async with _build_client(config) as client:
            user = await client.login()
            click.echo(f"{user.label()} (uid {user.id})")

    _run(_whoami())


@cli.command("list")
@click.argument("entity_type")
@click.option("--page-size", type=int, default=None, help="Records per page")
@click.option("--page", type=int, default=None, help="Zero-based page number")
@click.pass_context
def list_cmd(
    ctx: click.Context, entity_type: str, page_size: int | None, page: int | None
) -> None:
    """Fetch and list entities of ENTITY_TYPE."""
    etype = _entity_type_or_exit(entity_type)
    config = _resolve_config(ctx)
    params: dict[str, int] = {}
    if page_size is not None:
        params["pagesize"] = page_size
    if page is not None:
        params["page"] = page

    async def _list() -> None:
        async with _build_client(config) as client:
            await _maybe_login(client)
            collection = client.collection(etype)
            await collection.fetch(params=params or None)
            if not len(collection):
                click.echo(f"No {etype.name} entities found.")
                return
            click.echo(f"{'ID':<8} {'Bundle':<20} {'Label'}")
            click.echo("-" * 60)
            for entity in collection:
                click.echo(f"{entity.id!s:<8} {entity.bundle() or '-':<20} {entity.label()}")

    _run(_list())


@cli.command()
@click.argument("entity_type")
@click.argument("entity_id", type=int)
@click.pass_context
def show(ctx: click.Context, entity_type: str, entity_id: int) -> None:
    """Fetch one entity and print it as JSON."""
    etype = _entity_type_or_exit(entity_type)
    config = _resolve_config(ctx)

    async def _show() -> None:
        async with _build_client(config) as client:
            await _maybe_login(client)
            entity = client.entity(etype, {etype.id_key: entity_id})
            await entity.fetch()
            click.echo(json.dumps(entity.serialize(), indent=2, sort_keys=True, default=str))

    _run(_show())


@cli.command("set-label")
@click.argument("entity_type")
@click.argument("entity_id", type=int)
@click.argument("label")
@click.pass_context
def set_label(ctx: click.Context, entity_type: str, entity_id: int, label: str) -> None:
    """Change the label (e.g. a node title) of one entity and confirm it."""
    etype = _entity_type_or_exit(entity_type)
    config = _resolve_config(ctx)

    async def _set_label() -> None:
        async with _build_client(config) as client:
            await _maybe_login(client)
            entity = client.entity(etype, {etype.id_key: entity_id})
            await entity.fetch()
            entity.set(etype.label_key, label)
            await entity.save()
            # Re-read so the output reflects what the server stored.
            await entity.fetch()
            click.echo(f"{etype.name} {entity.id} label updated: {entity.label()}")

    _run(_set_label())


def main() -> None:
    cli()
