"""Tests for crudforge/domain/models/descriptor.py."""

from datetime import datetime

import pytest

from crudforge.domain.errors import ConfigurationError, ValidationError
from crudforge.domain.models import (
    AuditSlot,
    Entity,
    EntityDescriptor,
    IdentifierType,
    UniqueConstraint,
)
from fakes import User, user_descriptor


class Category(Entity):
    title: str


# --- construction ---

def test_build_freezes_constraint_groups_as_tuples():
    descriptor = user_descriptor()
    assert descriptor.unique_constraints == (
        UniqueConstraint(("email",), "Email already registered"),
    )


def test_single_field_string_is_normalised_to_a_group():
    assert UniqueConstraint("email").fields == ("email",)


def test_constraint_gets_a_default_message_naming_its_fields():
    assert UniqueConstraint(("team", "member")).message == "team, member must be unique"


def test_default_name_is_snake_case_plural():
    assert user_descriptor().name == "users"
    assert EntityDescriptor.build(Category, IdentifierType.LONG_IDENTITY).name == "categories"


def test_explicit_name_wins():
    descriptor = EntityDescriptor.build(User, IdentifierType.LONG_IDENTITY, name="people")
    assert descriptor.name == "people"


def test_descriptor_is_immutable():
    descriptor = user_descriptor()
    with pytest.raises(AttributeError):
        descriptor.identifier_type = IdentifierType.LONG_SEQUENCE  # type: ignore[misc]


# --- eager validation ---

def test_unknown_unique_field_fails_registration():
    with pytest.raises(ConfigurationError, match="phone"):
        EntityDescriptor.build(
            User, IdentifierType.LONG_IDENTITY, unique_constraints=[UniqueConstraint(("phone",))]
        )


def test_empty_unique_group_fails_registration():
    with pytest.raises(ConfigurationError):
        EntityDescriptor.build(
            User, IdentifierType.LONG_IDENTITY, unique_constraints=[UniqueConstraint(())]
        )


def test_missing_identifier_field_fails_registration():
    with pytest.raises(ConfigurationError, match="identifier"):
        EntityDescriptor.build(User, IdentifierType.LONG_IDENTITY, id_field="uid")


def test_non_model_type_fails_registration():
    with pytest.raises(ConfigurationError):
        EntityDescriptor.build(object, IdentifierType.LONG_IDENTITY)  # type: ignore[arg-type]


def test_audit_slot_without_field_fails_registration():
    with pytest.raises(ConfigurationError, match="created_by"):
        EntityDescriptor.build(
            User, IdentifierType.LONG_IDENTITY, audit_slots=[AuditSlot.CREATED_BY]
        )


# --- ids and conversion ---

def test_parse_id_converts_numeric_strings_for_long_ids():
    assert user_descriptor().parse_id("42") == 42


def test_parse_id_rejects_non_numeric_long_ids():
    with pytest.raises(ValidationError):
        user_descriptor().parse_id("abc")


def test_parse_id_keeps_strings_for_generated_ids():
    descriptor = user_descriptor(IdentifierType.STRING_GENERATED)
    assert descriptor.parse_id("65f0c0ffee") == "65f0c0ffee"


def test_dump_excludes_identifier():
    record = user_descriptor().dump(User(id=3, name="A", email="a@x.com"))
    assert "id" not in record
    assert record["email"] == "a@x.com"


def test_load_restores_identifier_and_ignores_unknown_columns():
    entity = user_descriptor().load(
        {"name": "A", "email": "a@x.com", "legacy": 1, "created_at": datetime(2024, 1, 1)}, 7
    )
    assert entity.id == 7
    assert entity.created_at == datetime(2024, 1, 1)


def test_data_fields_exclude_identifier():
    assert user_descriptor().data_fields == ("name", "email", "created_at", "updated_at")


def test_audit_field_names_follow_declared_slots():
    assert user_descriptor().audit_field_names == {"created_at", "updated_at"}


def test_audit_slot_groups_map_to_field_names():
    assert {s.field_name for s in AuditSlot.timestamps()} == {"created_at", "updated_at"}
    assert {s.field_name for s in AuditSlot.all()} == {
        "created_at",
        "updated_at",
        "created_by",
        "updated_by",
    }


def test_with_id_replaces_only_the_identifier():
    entity = User(id=3, name="A", email="a@x.com")
    moved = user_descriptor().with_id(entity, 9)
    assert moved.id == 9
    assert moved.model_dump(exclude={"id"}) == entity.model_dump(exclude={"id"})
