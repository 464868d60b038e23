"""Entity models, collections and per-variant configuration."""

from drupal_services.entities.collection import EntityCollection
from drupal_services.entities.model import Entity
from drupal_services.entities.types import (
    FILE,
    NODE,
    TAXONOMY_TERM,
    TAXONOMY_VOCABULARY,
    USER,
    EntityType,
    get_entity_type,
    list_entity_types,
    register_entity_type,
)

__all__ = [
    "FILE",
    "NODE",
    "TAXONOMY_TERM",
    "TAXONOMY_VOCABULARY",
    "USER",
    "Entity",
    "EntityCollection",
    "EntityType",
    "get_entity_type",
    "list_entity_types",
    "register_entity_type",
]
