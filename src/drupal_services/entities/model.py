"""Observable Drupal entity model.

One :class:`Entity` class serves every variant; the variant's
:class:`~drupal_services.entities.types.EntityType` supplies the id, bundle
and label fields and the coercion rules. Attributes are held canonically
typed: integer and boolean fields are coerced whenever they are set, and the
id field is always an integer.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode

from drupal_services.core.events import Events
from drupal_services.core.sync import BeforeSend, SyncMethod
from drupal_services.entities.coercion import (
    coerce_bool_input,
    coerce_bool_output,
    coerce_integer,
)
from drupal_services.entities.types import EntityType, get_entity_type
from drupal_services.errors import RequestError

if TYPE_CHECKING:
    from drupal_services.core.sync import SyncInterceptor
    from drupal_services.entities.collection import EntityCollection

logger = logging.getLogger(__name__)

# Added by the RDF module on read; must not be sent back.
SERVER_ONLY_FIELDS = frozenset({"rdf_mapping"})

_MISSING = object()


class Entity(Events):
    """A server-backed record of one entity variant.

    Events
    ------
    ``change:<field>`` (entity, value), ``change`` (entity),
    ``request`` (entity, method), ``sync`` (entity, payload),
    ``destroy`` (entity), ``error`` (entity, exc).
    """

    def __init__(
        self,
        entity_type: EntityType | str,
        attributes: Mapping[str, Any] | None = None,
        *,
        sync: SyncInterceptor | None = None,
        collection: EntityCollection | None = None,
        strict: bool = False,
    ) -> None:
        super().__init__()
        self.entity_type = get_entity_type(entity_type)
        self.sync = sync
        self.collection = collection
        self.strict = strict
        self._attributes: dict[str, Any] = {}
        self._previous: dict[str, Any] = {}
        self.changed: dict[str, Any] = {}
        if attributes:
            self.set(attributes, silent=True)
        self.changed = {}

    def __repr__(self) -> str:
        return f"<Entity {self.entity_type.name} {self.entity_type.id_key}={self.id!r}>"

    # ------------------------------------------------------------------
    # Attribute store
    # ------------------------------------------------------------------

    @property
    def id(self) -> int | None:
        return self._attributes.get(self.entity_type.id_key)

    @property
    def attributes(self) -> dict[str, Any]:
        """A shallow copy of the current attributes."""
        return dict(self._attributes)

    @property
    def previous_attributes(self) -> dict[str, Any]:
        """Attributes as they were before the last change."""
        return dict(self._previous)

    def is_new(self) -> bool:
        """True until the server has assigned an id."""
        return self.id is None

    def get(self, key: str, default: Any = None) -> Any:
        return self._attributes.get(key, default)

    def has(self, key: str) -> bool:
        return self._attributes.get(key) is not None

    def __getitem__(self, key: str) -> Any:
        return self._attributes[key]

    def __contains__(self, key: object) -> bool:
        return key in self._attributes

    def __iter__(self) -> Iterator[str]:
        return iter(self._attributes)

    def set(
        self,
        key: str | Mapping[str, Any],
        value: Any = _MISSING,
        *,
        silent: bool = False,
    ) -> Entity:
        """Set one field (``set("title", "x")``) or many (``set({...})``).

        Values are coerced per the variant before they are stored. Emits
        ``change:<field>`` for every field whose value changed, then one
        ``change``, unless *silent*.
        """
        if isinstance(key, Mapping):
            if value is not _MISSING:
                raise TypeError("value must not be given together with a mapping")
            attrs = dict(key)
        else:
            if value is _MISSING:
                raise TypeError(f"set() missing value for {key!r}")
            attrs = {key: value}

        attrs = self.clean_input(attrs)

        self._previous = dict(self._attributes)
        changes: dict[str, Any] = {}
        for name, new_value in attrs.items():
            if name not in self._attributes or self._attributes[name] != new_value:
                changes[name] = new_value
            self._attributes[name] = new_value

        self._notify(changes, silent=silent)
        return self

    def unset(self, key: str, *, silent: bool = False) -> Entity:
        """Remove *key*; emits ``change`` if it was present."""
        if key not in self._attributes:
            return self
        self._previous = dict(self._attributes)
        del self._attributes[key]
        self._notify({key: None}, silent=silent)
        return self

    def clear(self, *, silent: bool = False) -> Entity:
        """Remove every attribute, including the id."""
        self._previous = dict(self._attributes)
        changes = dict.fromkeys(self._attributes)
        self._attributes.clear()
        self._notify(changes, silent=silent)
        return self

    def _notify(self, changes: dict[str, Any], *, silent: bool) -> None:
        if not changes:
            return
        self.changed = changes
        if silent:
            return
        for name, new_value in changes.items():
            self.trigger(f"change:{name}", self, new_value)
        self.trigger("change", self)

    def clean_input(self, values: dict[str, Any]) -> dict[str, Any]:
        """Coerce the integer, boolean and id fields present in *values*."""
        etype = self.entity_type
        for name in etype.integer_fields & values.keys():
            values[name] = coerce_integer(values[name], strict=self.strict, field=name)
        for name in etype.boolean_fields & values.keys():
            values[name] = coerce_bool_input(values[name], strict=self.strict, field=name)
        # A null id keeps the entity new instead of turning into id 0.
        if values.get(etype.id_key) is not None:
            values[etype.id_key] = coerce_integer(
                values[etype.id_key], strict=self.strict, field=etype.id_key
            )
        return values

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def label(self) -> Any:
        return self.get(self.entity_type.label_key)

    def bundle(self) -> Any:
        """The bundle value, or None when the variant has no bundles."""
        if self.entity_type.bundle_key is None:
            return None
        return self.get(self.entity_type.bundle_key)

    def resource_path(self) -> str:
        root = f"/{self.entity_type.entity_type}"
        if self.is_new():
            return root

        path = f"{root}/{quote(str(self.id), safe='')}"
        if self.entity_type.query:
            path = f"{path}?{urlencode(self.entity_type.query)}"
        return path

    def serialize(self, attributes: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Return the attributes in the form Services accepts.

        Integer fields are re-coerced, boolean fields become ``True`` or
        ``None`` and server-only fields are dropped. *attributes* restricts
        the output to a subset (used for PATCH).
        """
        data = dict(self._attributes if attributes is None else attributes)
        etype = self.entity_type
        for name in etype.integer_fields & data.keys():
            data[name] = coerce_integer(data[name])
        for name in etype.boolean_fields & data.keys():
            data[name] = coerce_bool_output(data[name])
        for name in SERVER_ONLY_FIELDS:
            data.pop(name, None)
        return data

    def parse(self, payload: Any) -> dict[str, Any]:
        """Turn a response body into attributes for :meth:`set`."""
        if payload is None:
            return {}
        if not isinstance(payload, dict):
            raise RequestError(
                status_code=200,
                method="GET",
                url=self.resource_path(),
                message=f"Expected a JSON object for {self.entity_type.name}",
            )
        return payload

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _get_sync(self) -> SyncInterceptor:
        """Return the interceptor, raising if the entity is not bound to a client."""
        if self.sync is not None:
            return self.sync
        if self.collection is not None and self.collection.sync is not None:
            return self.collection.sync
        raise RuntimeError(f"{self!r} is not bound to a client; pass sync= or use a client")

    async def _call(self, method: SyncMethod, **kwargs: Any) -> Any:
        sync = self._get_sync()
        self.trigger("request", self, method)
        try:
            return await sync(method, self, **kwargs)
        except Exception as exc:
            self.trigger("error", self, exc)
            raise

    async def fetch(
        self,
        *,
        params: Mapping[str, Any] | None = None,
        before_send: BeforeSend | None = None,
    ) -> Entity:
        """Reload the entity from the server."""
        payload = await self._call(SyncMethod.READ, params=params, before_send=before_send)
        self.set(self.parse(payload))
        self.trigger("sync", self, payload)
        return self

    async def save(
        self,
        attributes: Mapping[str, Any] | None = None,
        *,
        patch: bool = False,
        before_send: BeforeSend | None = None,
    ) -> Entity:
        """Create or update the entity on the server.

        New entities are POSTed to the variant's collection path and adopt
        the id the server assigns. Saved entities are PUT in full, or with
        *patch* only *attributes* are sent via PATCH.
        """
        if attributes:
            self.set(attributes)

        if self.is_new():
            method = SyncMethod.CREATE
            body = self.serialize()
        elif patch:
            method = SyncMethod.PATCH
            body = self.serialize(self.clean_input(dict(attributes or {})))
        else:
            method = SyncMethod.UPDATE
            body = self.serialize()

        payload = await self._call(method, json=body, before_send=before_send)
        server_attrs = self.parse(payload)
        if server_attrs:
            self.set(server_attrs)
        logger.info(
            "Saved %s %s=%s", self.entity_type.name, self.entity_type.id_key, self.id
        )
        self.trigger("sync", self, payload)
        return self

    async def destroy(self, *, before_send: BeforeSend | None = None) -> None:
        """Delete the entity on the server; new entities are only dropped locally."""
        if not self.is_new():
            await self._call(SyncMethod.DELETE, before_send=before_send)
            logger.info(
                "Deleted %s %s=%s", self.entity_type.name, self.entity_type.id_key, self.id
            )
        self.trigger("destroy", self)
