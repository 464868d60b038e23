"""Drupal Services client: observable entities, session and CSRF handling.

Quick start::

    from drupal_services import DrupalClient, parse_config

    config = parse_config({"drupal": {"app_root": "https://example.com/api"}})
    async with DrupalClient(config) as client:
        await client.login("editor", "secret")
        nodes = client.collection("node")
        await nodes.fetch(params={"pagesize": 20})
"""

__version__ = "0.1.0"

from drupal_services.client import DrupalClient
from drupal_services.config import ClientConfig, ConfigError, load_config, parse_config
from drupal_services.entities import Entity, EntityCollection, EntityType
from drupal_services.errors import (
    CoercionError,
    DrupalServicesError,
    RequestError,
    TokenError,
    TransportError,
)
from drupal_services.session import Session, SessionState

__all__ = [
    "ClientConfig",
    "CoercionError",
    "ConfigError",
    "DrupalClient",
    "DrupalServicesError",
    "Entity",
    "EntityCollection",
    "EntityType",
    "RequestError",
    "Session",
    "SessionState",
    "TokenError",
    "TransportError",
    "load_config",
    "parse_config",
]
