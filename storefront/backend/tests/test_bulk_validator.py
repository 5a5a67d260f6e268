"""Tests for storefront.backend.core.bulk.validator: per-row validation."""
from datetime import date

import pytest

from storefront.backend.core.bulk.models import (
    ImportRowCommand,
    SoftDeleteCommand,
    StatusChangeCommand,
    UpdateCommand,
)
from storefront.backend.core.bulk.validator import is_valid_user_id, validate

from .conftest import ALICE_ID


class TestUserId:

    def test_uuid_accepted(self):
        assert is_valid_user_id(ALICE_ID)

    @pytest.mark.parametrize("value", [None, "", "   ", "not-a-uuid", 42])
    def test_malformed_rejected(self, value):
        assert not is_valid_user_id(value)


class TestUpdateValidation:

    def test_valid_update_is_normalized(self):
        result = validate(UpdateCommand(ALICE_ID, {"email": " Alice@Example.COM ", "first_name": " Al "}))
        assert result.ok
        assert result.command.fields == {"email": "alice@example.com", "first_name": "Al"}

    def test_malformed_user_id(self):
        result = validate(UpdateCommand("123", {"first_name": "Al"}))
        assert not result.ok
        assert result.error == "Invalid user ID"

    def test_missing_user_id(self):
        result = validate(UpdateCommand(None, {"first_name": "Al"}))
        assert result.error == "Invalid user ID"

    def test_empty_fields(self):
        result = validate(UpdateCommand(ALICE_ID, {}))
        assert not result.ok
        assert result.error == "No fields to update"

    def test_only_unknown_fields(self):
        result = validate(UpdateCommand(ALICE_ID, {"password": "x", "flags": []}))
        assert not result.ok
        assert result.error.startswith("No updatable fields provided")
        assert "password" in result.error

    def test_unknown_fields_dropped_when_known_present(self):
        result = validate(UpdateCommand(ALICE_ID, {"city": "Berlin", "customer_id": "CUST_X"}))
        assert result.ok
        assert result.command.fields == {"city": "Berlin"}

    def test_invalid_email(self):
        result = validate(UpdateCommand(ALICE_ID, {"email": "nope"}))
        assert not result.ok
        assert "email invalid email address" in result.error

    def test_name_too_long(self):
        result = validate(UpdateCommand(ALICE_ID, {"last_name": "x" * 51}))
        assert not result.ok
        assert "last_name" in result.error

    def test_invalid_phone(self):
        result = validate(UpdateCommand(ALICE_ID, {"phone": "call me"}))
        assert "phone invalid phone number" in result.error

    def test_invalid_status(self):
        result = validate(UpdateCommand(ALICE_ID, {"status": "deleted"}))
        assert not result.ok
        assert "status must be one of" in result.error

    def test_all_problems_reported(self):
        result = validate(UpdateCommand(ALICE_ID, {"email": "bad", "gender": "unknown"}))
        assert result.error.startswith("Invalid fields: ")
        assert "email" in result.error and "gender" in result.error

    def test_date_of_birth_parsed(self):
        result = validate(UpdateCommand(ALICE_ID, {"date_of_birth": "1990-04-01"}))
        assert result.command.fields["date_of_birth"] == date(1990, 4, 1)

    def test_tags_from_string(self):
        result = validate(UpdateCommand(ALICE_ID, {"tags": "vip, premium ,"}))
        assert result.command.fields["tags"] == ["vip", "premium"]

    def test_verification_flags_must_be_bool(self):
        result = validate(UpdateCommand(ALICE_ID, {"email_verified": "yes"}))
        assert not result.ok


class TestStatusAndDeleteValidation:

    def test_status_change_ok(self):
        result = validate(StatusChangeCommand(ALICE_ID, "suspended", "chargebacks"))
        assert result.ok

    def test_status_change_bad_id(self):
        result = validate(StatusChangeCommand("x", "suspended"))
        assert result.error == "Invalid user ID"

    def test_status_change_unknown_status(self):
        result = validate(StatusChangeCommand(ALICE_ID, "archived"))
        assert result.error == "Invalid status: archived"

    def test_reason_too_long(self):
        result = validate(StatusChangeCommand(ALICE_ID, "banned", "r" * 501))
        assert not result.ok

    def test_soft_delete_ok(self):
        assert validate(SoftDeleteCommand(ALICE_ID)).ok

    def test_soft_delete_missing_id(self):
        result = validate(SoftDeleteCommand(None))
        assert result.error == "Invalid user ID"


class TestImportRowValidation:

    def test_missing_required_fields_named(self):
        result = validate(ImportRowCommand({"first_name": "A", "last_name": "B", "email": ""}, row_number=2))
        assert not result.ok
        assert result.error == "Missing required fields: email"

    def test_several_missing(self):
        result = validate(ImportRowCommand({"email": "a@b.co"}))
        assert result.error == "Missing required fields: first_name, last_name"

    def test_blank_optional_cells_dropped(self):
        result = validate(ImportRowCommand({
            "first_name": "Dana", "last_name": "Lee", "email": "DANA@example.com",
            "phone": "", "city": "  ",
        }))
        assert result.ok
        fields = result.command.raw_fields
        assert fields["email"] == "dana@example.com"
        assert "phone" not in fields and "city" not in fields

    def test_source_defaults_to_csv_import(self):
        result = validate(ImportRowCommand({"first_name": "D", "last_name": "L", "email": "d@l.io"}))
        assert result.command.raw_fields["source"] == "csv_import"

    def test_status_is_not_importable(self):
        result = validate(ImportRowCommand({
            "first_name": "D", "last_name": "L", "email": "d@l.io", "status": "banned",
        }))
        assert result.ok
        assert "status" not in result.command.raw_fields

    def test_invalid_email(self):
        result = validate(ImportRowCommand({"first_name": "D", "last_name": "L", "email": "d-at-l"}))
        assert not result.ok
        assert "email" in result.error


def test_unsupported_command_type():
    with pytest.raises(TypeError):
        validate(object())
