"""Ordered, fetchable collections of entities of one variant."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from drupal_services.core.events import Events
from drupal_services.core.sync import BeforeSend, SyncMethod
from drupal_services.entities.coercion import parse_integer
from drupal_services.entities.model import Entity
from drupal_services.entities.types import EntityType, get_entity_type
from drupal_services.errors import RequestError

if TYPE_CHECKING:
    from drupal_services.core.sync import SyncInterceptor

logger = logging.getLogger(__name__)

Comparator = str | Callable[[Entity], Any]

# Entity events re-emitted by the collection; add/remove/sort/reset are its own.
_RELAYED_EVENTS = frozenset({"change", "request", "sync", "error"})


class EntityCollection(Events):
    """A list of :class:`Entity` objects indexed by their id field.

    The collection's resource path is derived from the member variant. The
    collection never assigns identity; an entity that gains an id after
    being added (first save) is re-indexed automatically.

    *comparator* keeps the collection sorted: an attribute name or a key
    function.

    Events
    ------
    ``add`` (entity, collection), ``remove`` (entity, collection),
    ``reset`` (collection), ``sort`` (collection), ``sync`` (collection,
    payload), and the member events ``change``, ``change:<field>``,
    ``request``, ``sync``, ``error`` and ``destroy`` relayed as-is.
    """

    def __init__(
        self,
        entity_type: EntityType | str,
        models: Iterable[Entity | Mapping[str, Any]] | None = None,
        *,
        sync: SyncInterceptor | None = None,
        comparator: Comparator | None = None,
        strict: bool = False,
    ) -> None:
        super().__init__()
        self.entity_type = get_entity_type(entity_type)
        self.sync = sync
        self.comparator = comparator
        self.strict = strict
        self._models: list[Entity] = []
        self._by_id: dict[int, Entity] = {}
        if models:
            self.reset(models, silent=True)

    def __repr__(self) -> str:
        return f"<EntityCollection {self.entity_type.name} len={len(self._models)}>"

    def __len__(self) -> int:
        return len(self._models)

    def __iter__(self) -> Iterator[Entity]:
        return iter(list(self._models))

    def __getitem__(self, index: int) -> Entity:
        return self._models[index]

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Entity):
            return item in self._models
        return self.get(item) is not None

    def resource_path(self) -> str:
        return f"/{self.entity_type.entity_type}"

    @property
    def models(self) -> list[Entity]:
        return list(self._models)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, key: Any) -> Entity | None:
        """Find a member by entity, id, or attribute mapping carrying the id."""
        if key is None:
            return None
        if isinstance(key, Entity):
            if key in self._models:
                return key
            key = key.id
        elif isinstance(key, Mapping):
            key = key.get(self.entity_type.id_key)
        entity_id = parse_integer(key)
        if entity_id is None:
            return None
        return self._by_id.get(entity_id)

    def pluck(self, key: str) -> list[Any]:
        return [model.get(key) for model in self._models]

    def where(self, **attrs: Any) -> list[Entity]:
        """Members whose attributes equal every given value."""
        return [
            model
            for model in self._models
            if all(model.get(name) == value for name, value in attrs.items())
        ]

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def _prepare(self, item: Entity | Mapping[str, Any]) -> Entity:
        if isinstance(item, Entity):
            if item.entity_type != self.entity_type:
                raise TypeError(
                    f"Cannot add {item.entity_type.name} entity to a "
                    f"{self.entity_type.name} collection"
                )
            if item.collection is None:
                item.collection = self
            return item
        return Entity(self.entity_type, item, collection=self, strict=self.strict)

    def _attach(self, model: Entity, index: int | None = None) -> None:
        if index is None:
            self._models.append(model)
        else:
            self._models.insert(index, model)
        if model.id is not None:
            self._by_id[model.id] = model
        model.on("all", self._on_model_event)

    def _detach(self, model: Entity) -> None:
        self._models.remove(model)
        if model.id is not None and self._by_id.get(model.id) is model:
            del self._by_id[model.id]
        model.off("all", self._on_model_event)
        if model.collection is self:
            model.collection = None

    def add(
        self,
        items: Entity | Mapping[str, Any] | Iterable[Entity | Mapping[str, Any]],
        *,
        merge: bool = False,
        at: int | None = None,
        silent: bool = False,
    ) -> list[Entity]:
        """Add entities or attribute mappings; returns the resulting members.

        An item whose id is already present is merged into the existing
        member when *merge* is set and skipped otherwise.
        """
        return self.set(items, remove=False, merge=merge, at=at, silent=silent)

    def remove(
        self,
        items: Any,
        *,
        silent: bool = False,
    ) -> list[Entity]:
        """Remove members given as entities, ids or mappings; returns those removed."""
        if isinstance(items, Entity | Mapping) or not isinstance(items, Iterable) or isinstance(
            items, str
        ):
            items = [items]

        removed: list[Entity] = []
        for item in items:
            model = self.get(item)
            if model is None:
                continue
            self._detach(model)
            removed.append(model)
            if not silent:
                self.trigger("remove", model, self)
        return removed

    def set(
        self,
        items: Entity | Mapping[str, Any] | Iterable[Entity | Mapping[str, Any]],
        *,
        add: bool = True,
        remove: bool = True,
        merge: bool = True,
        at: int | None = None,
        silent: bool = False,
    ) -> list[Entity]:
        """Smart update: add new members, merge known ones, drop missing ones.

        Returns the members corresponding to *items*, in input order.
        """
        if isinstance(items, Entity | Mapping):
            items = [items]

        result: list[Entity] = []
        seen: set[int] = set()
        added: list[Entity] = []
        resort = False
        sort_key = self._sort_key(self.comparator) if self.comparator is not None else None

        for item in items:
            existing = self.get(item)
            if existing is not None:
                if merge and existing is not item:
                    attrs = item.attributes if isinstance(item, Entity) else item
                    before = sort_key(existing) if sort_key is not None else None
                    existing.set(dict(attrs), silent=silent)
                    if sort_key is not None and sort_key(existing) != before:
                        resort = True
                result.append(existing)
                seen.add(id(existing))
                continue

            if not add:
                continue
            model = self._prepare(item)
            if model.id is not None and model.id in self._by_id:
                # Duplicate id within the same input.
                result.append(self._by_id[model.id])
                seen.add(id(self._by_id[model.id]))
                continue
            self._attach(model, at)
            if at is not None:
                at += 1
            added.append(model)
            result.append(model)
            seen.add(id(model))

        if remove:
            stale = [model for model in self._models if id(model) not in seen]
            self.remove(stale, silent=silent)

        needs_sort = (bool(added) or resort) and sort_key is not None and at is None
        if needs_sort:
            self.sort(silent=True)

        if not silent:
            for model in added:
                self.trigger("add", model, self)
            if needs_sort:
                self.trigger("sort", self)
        return result

    def reset(
        self,
        items: Iterable[Entity | Mapping[str, Any]] | None = None,
        *,
        silent: bool = False,
    ) -> list[Entity]:
        """Replace every member without per-item ``add``/``remove`` events."""
        for model in list(self._models):
            self._detach(model)
        result = self.set(items or [], remove=False, silent=True)
        if not silent:
            self.trigger("reset", self)
        return result

    def sort(self, *, silent: bool = False) -> EntityCollection:
        if self.comparator is None:
            raise ValueError("Cannot sort a collection without a comparator")
        self._models.sort(key=self._sort_key(self.comparator))
        if not silent:
            self.trigger("sort", self)
        return self

    @staticmethod
    def _sort_key(comparator: Comparator) -> Callable[[Entity], Any]:
        if isinstance(comparator, str):
            return lambda model: model.get(comparator)
        return comparator

    def _on_model_event(self, event: str, *args: Any) -> None:
        model = args[0] if args else None
        if event == f"change:{self.entity_type.id_key}" and isinstance(model, Entity):
            self._reindex(model)
        if event == "destroy" and isinstance(model, Entity) and model in self._models:
            self.remove(model)
        if event in _RELAYED_EVENTS or event.startswith("change:") or event == "destroy":
            self.trigger(event, *args)

    def _reindex(self, model: Entity) -> None:
        previous = model.previous_attributes.get(self.entity_type.id_key)
        if previous is not None and self._by_id.get(previous) is model:
            del self._by_id[previous]
        if model.id is not None:
            self._by_id[model.id] = model

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def parse(self, payload: Any) -> list[Mapping[str, Any]]:
        """Turn an index response into a list of attribute mappings."""
        if payload is None:
            return []
        if isinstance(payload, Mapping):
            # Some Services resources key index results by id.
            payload = list(payload.values())
        if not isinstance(payload, list) or not all(isinstance(r, Mapping) for r in payload):
            raise RequestError(
                status_code=200,
                method="GET",
                url=self.resource_path(),
                message=f"Expected a JSON list of {self.entity_type.name} records",
            )
        return payload

    async def fetch(
        self,
        *,
        remove: bool = True,
        reset: bool = False,
        params: Mapping[str, Any] | None = None,
        before_send: BeforeSend | None = None,
    ) -> list[Entity]:
        """Load the collection from the server.

        With *remove* False, fetched records are merged into the existing
        members instead of replacing them; *reset* replaces everything
        without per-item events. *params* is sent as the query string
        (e.g. ``{"pagesize": 20, "page": 1}``).
        """
        if self.sync is None:
            raise RuntimeError(f"{self!r} is not bound to a client; pass sync= or use a client")

        payload = await self.sync(
            SyncMethod.READ, self, params=params, before_send=before_send
        )
        records = self.parse(payload)
        if reset:
            self.reset(records)
        else:
            self.set(records, remove=remove)
        logger.debug("Fetched %d %s record(s)", len(records), self.entity_type.name)
        self.trigger("sync", self, payload)
        return list(self._models)

    async def create(
        self,
        attributes: Mapping[str, Any] | Entity,
        *,
        before_send: BeforeSend | None = None,
    ) -> Entity:
        """Add a new entity to the collection and save it."""
        model = self._prepare(attributes)
        self.add(model)
        await model.save(before_send=before_send)
        return model
