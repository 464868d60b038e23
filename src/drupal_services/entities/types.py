"""Entity variant configuration.

Each Drupal entity variant is described by one :class:`EntityType` record
(id field, resource path segment, bundle/label fields and the fields that
need type coercion). Models and collections are parameterized by these
records instead of subclassing per variant.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class EntityType(BaseModel):
    """Configuration for one entity variant.

    Attributes
    ----------
    name:
        Registry key (e.g. ``"node"``).
    id_key:
        Name of the identifying field (e.g. ``"nid"``).
    entity_type:
        Resource path segment (e.g. ``"taxonomy_term"``).
    bundle_key:
        Name of the sub-type field, or None when the variant has no bundles.
    label_key:
        Name of the human-readable display field.
    boolean_fields / integer_fields:
        Fields coerced on every read and write.
    query:
        Query parameters appended to the resource path of saved entities.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    id_key: str = Field(min_length=1)
    entity_type: str = Field(min_length=1)
    bundle_key: str | None = None
    label_key: str = Field(min_length=1)
    boolean_fields: frozenset[str] = frozenset()
    integer_fields: frozenset[str] = frozenset()
    query: tuple[tuple[str, int | str], ...] = ()

    @field_validator("name", "id_key", "entity_type", "label_key")
    @classmethod
    def _normalize_non_empty(cls, value: str, info: ValidationInfo) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{info.field_name} must be a non-empty string")
        return normalized


NODE = EntityType(
    name="node",
    id_key="nid",
    entity_type="node",
    bundle_key="type",
    label_key="title",
    boolean_fields=frozenset({"status", "sticky", "promote"}),
    integer_fields=frozenset(
        {
            "changed",
            "cid",
            "comment",
            "comment_count",
            "created",
            "last_comment_timestamp",
            "last_comment_uid",
            "revision_timestamp",
            "revision_uid",
            "tnid",
            "translate",
            "uid",
            "vid",
        }
    ),
)

FILE = EntityType(
    name="file",
    id_key="fid",
    entity_type="file",
    bundle_key="type",
    label_key="filename",
    integer_fields=frozenset({"filesize", "status", "timestamp", "uid"}),
    # Keeps the base64 file body and derived image style URLs out of reads.
    query=(("file_contents", 0), ("image_styles", 0)),
)

TAXONOMY_TERM = EntityType(
    name="taxonomy_term",
    id_key="tid",
    entity_type="taxonomy_term",
    bundle_key="vocabulary_machine_name",
    label_key="name",
    integer_fields=frozenset({"vid", "weight"}),
)

TAXONOMY_VOCABULARY = EntityType(
    name="taxonomy_vocabulary",
    id_key="vid",
    entity_type="taxonomy_vocabulary",
    label_key="name",
    integer_fields=frozenset({"hierarchy", "weight"}),
)

USER = EntityType(
    name="user",
    id_key="uid",
    entity_type="user",
    label_key="name",
    integer_fields=frozenset({"access", "created", "login", "status"}),
)

_REGISTRY: dict[str, EntityType] = {
    t.name: t for t in (NODE, FILE, TAXONOMY_TERM, TAXONOMY_VOCABULARY, USER)
}


def register_entity_type(entity_type: EntityType, *, replace: bool = False) -> EntityType:
    """Add a variant to the registry.

    Raises
    ------
    ValueError
        If a variant with the same name exists and *replace* is False.
    """
    if entity_type.name in _REGISTRY and not replace:
        raise ValueError(f"Entity type already registered: {entity_type.name!r}")
    _REGISTRY[entity_type.name] = entity_type
    return entity_type


def get_entity_type(name: str | EntityType) -> EntityType:
    """Resolve a variant by name; EntityType instances pass through."""
    if isinstance(name, EntityType):
        return name
    try:
        return _REGISTRY[name]
    except KeyError:
        known = ", ".join(sorted(_REGISTRY))
        raise KeyError(f"Unknown entity type {name!r} (known: {known})") from None


def list_entity_types() -> list[EntityType]:
    """Return all registered variants sorted by name."""
    return [_REGISTRY[name] for name in sorted(_REGISTRY)]
