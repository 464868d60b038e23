"""Tests for the entity variant registry."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

import drupal_services.entities.types as types_mod
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

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _isolated_registry(monkeypatch):
    monkeypatch.setattr(types_mod, "_REGISTRY", dict(types_mod._REGISTRY))


class TestBuiltinVariants:
    @pytest.mark.parametrize(
        ("etype", "id_key", "path", "bundle", "label"),
        [
            (NODE, "nid", "node", "type", "title"),
            (FILE, "fid", "file", "type", "filename"),
            (TAXONOMY_TERM, "tid", "taxonomy_term", "vocabulary_machine_name", "name"),
            (TAXONOMY_VOCABULARY, "vid", "taxonomy_vocabulary", None, "name"),
            (USER, "uid", "user", None, "name"),
        ],
    )
    def test_variant_fields(self, etype, id_key, path, bundle, label):
        assert etype.id_key == id_key
        assert etype.entity_type == path
        assert etype.bundle_key == bundle
        assert etype.label_key == label

    def test_node_coercion_fields(self):
        assert NODE.boolean_fields == {"status", "sticky", "promote"}
        assert {"uid", "vid", "created", "changed", "comment"} <= NODE.integer_fields

    def test_file_query_excludes_contents(self):
        assert dict(FILE.query) == {"file_contents": 0, "image_styles": 0}

    def test_user_status_is_integer(self):
        assert "status" in USER.integer_fields
        assert USER.boolean_fields == frozenset()

    def test_records_are_frozen(self):
        with pytest.raises(ValidationError):
            NODE.label_key = "name"  # type: ignore[misc]


class TestEntityTypeValidation:
    def test_blank_id_key_rejected(self):
        with pytest.raises(ValidationError, match="id_key"):
            EntityType(name="comment", id_key="  ", entity_type="comment", label_key="subject")

    def test_names_are_stripped(self):
        etype = EntityType(
            name=" comment ", id_key="cid", entity_type="comment", label_key="subject"
        )
        assert etype.name == "comment"

    def test_unknown_option_rejected(self):
        with pytest.raises(ValidationError):
            EntityType(
                name="comment",
                id_key="cid",
                entity_type="comment",
                label_key="subject",
                colour="blue",
            )


class TestRegistry:
    def test_lookup_by_name(self):
        assert get_entity_type("node") is NODE

    def test_instances_pass_through(self):
        assert get_entity_type(FILE) is FILE

    def test_unknown_name_lists_known(self):
        with pytest.raises(KeyError, match="known: file, node"):
            get_entity_type("comment")

    def test_list_is_sorted(self):
        names = [etype.name for etype in list_entity_types()]
        assert names == sorted(names)
        assert names == ["file", "node", "taxonomy_term", "taxonomy_vocabulary", "user"]

    def test_register_new_variant(self):
        comment = EntityType(
            name="comment",
            id_key="cid",
            entity_type="comment",
            label_key="subject",
            integer_fields=frozenset({"nid"}),
        )
        assert register_entity_type(comment) is comment
        assert get_entity_type("comment") is comment

    def test_duplicate_rejected_without_replace(self):
        with pytest.raises(ValueError, match="already registered"):
            register_entity_type(NODE)

    def test_replace(self):
        custom = NODE.model_copy(update={"label_key": "headline"})
        register_entity_type(custom, replace=True)
        assert get_entity_type("node").label_key == "headline"
