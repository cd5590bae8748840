"""Tests for FieldRule evaluation and the DataControl validator."""

import pytest

from pricera_store.errors import UniquenessConflictError, ValidationFailedError
from pricera_store.schema import Column, TableDefinition
from pricera_store.validation import (
    SMALLINT_RANGE,
    DataControl,
    FieldRule,
    email_format,
    integer_value,
    is_missing,
    json_object_fields,
    string_list_fields,
    string_or_string_list_fields,
)

pytestmark = [
    pytest.mark.engine_validation,
]

TABLE = TableDefinition(
    "widget",
    [
        Column(name="guid", sql_type="integer", nullable=False, unique=True),
        Column(name="name", sql_type="varchar(128)", nullable=False),
        Column(name="code", sql_type="varchar(128)", unique=True),
    ],
)

RULES = (
    FieldRule(field="guid", label="GUID", required=True, unique=True),
    FieldRule(field="name", label="Name", required=True, max_length=128),
    FieldRule(field="code", label="Code", required=True, unique=True),
)


class TestIsMissing:
    """Test presence detection."""

    @pytest.mark.parametrize("value", [None, "", "   ", [], {}, ()])
    def test_missing_values(self, value):
        assert is_missing(value)

    @pytest.mark.parametrize("value", [0, False, "x", [1], {"a": 1}])
    def test_present_values(self, value):
        assert not is_missing(value)


class TestFieldRule:
    """Test in-memory rule evaluation."""

    def test_required(self):
        rule = FieldRule(field="name", label="Name", required=True)

        assert rule.evaluate("  ") == ["Name is required"]

    def test_optional_missing_value_is_fine(self):
        rule = FieldRule(field="code", label="Code", max_length=3, pattern=r"[A-Z]+")

        assert rule.evaluate(None) == []

    def test_max_length(self):
        rule = FieldRule(field="name", label="Name", max_length=128)

        assert rule.evaluate("x" * 129) == ["Name too long (max 128 characters)"]
        assert rule.evaluate("x" * 128) == []

    def test_pattern_must_match_whole_value(self):
        rule = FieldRule(field="alpha2", label="Alpha2", pattern=r"[A-Z]{2}", pattern_message="bad alpha2")

        assert rule.evaluate("CMR") == ["bad alpha2"]
        assert rule.evaluate("CM") == []

    def test_default_pattern_message(self):
        rule = FieldRule(field="ref", label="Reference", pattern=r"\d+")

        assert rule.evaluate("abc") == ["Reference has an invalid format"]

    def test_check_messages_are_appended(self):
        rule = FieldRule(field="email", label="Email", max_length=5, check=email_format)

        assert rule.evaluate("not-an-email") == ["Email too long (max 5 characters)", "Invalid email format"]


class TestCheckers:
    """Test structural checkers."""

    def test_address_missing_fields_named_together(self):
        check = json_object_fields("Address", ("city", "location", "district"))

        assert check({"city": "Douala"}) == ["Address is missing required fields: location, district"]

    def test_address_blank_field_counts_as_missing(self):
        check = json_object_fields("Address", ("city", "location", "district"))

        assert check({"city": "Douala", "location": " ", "district": "Akwa"}) == [
            "Address is missing required fields: location"
        ]

    def test_address_must_be_object(self):
        check = json_object_fields("Address", ("city",))

        assert check("Douala") == ["Address must be a valid JSON object"]

    def test_metadata_accepts_strings_and_string_lists(self):
        check = string_or_string_list_fields("Metadata", ("domaine", "sector", "speciality"))

        assert check({"domaine": "Retail", "sector": ["Food", "Drinks"], "speciality": "Grocery"}) == []
        assert check({"domaine": "Retail", "sector": [], "speciality": ["x", 1]}) == [
            "Metadata is missing required fields: sector, speciality"
        ]

    def test_taxonomy_arrays(self):
        check = string_list_fields("Taxonomy", ("domain", "tag", "merchant"))

        assert check({"domain": ["food"], "tag": [], "merchant": ["m1"]}) == []
        assert check({"domain": "food", "tag": ["a"]}) == [
            "Taxonomy is missing required fields: merchant",
            "Taxonomy.domain must be an array of strings",
        ]

    @pytest.mark.parametrize("value", ["237", 2.0, True, None])
    def test_integer_rejects_other_types(self, value):
        assert integer_value("Dialcode")(value) == ["Dialcode must be an integer"]

    def test_integer_bounds(self):
        check = integer_value("Dialcode", SMALLINT_RANGE)

        assert check(32767) == []
        assert check(-32768) == []
        assert check(32768) == ["Dialcode must be between -32768 and 32767"]
        assert integer_value("GUID")(2**31) == ["GUID must be between -2147483648 and 2147483647"]

    @pytest.mark.parametrize("email", ["a@b.co", "first.last@example.cm"])
    def test_valid_emails(self, email):
        assert email_format(email) == []

    @pytest.mark.parametrize("email", ["plain", "a@b", "a b@c.de", "@c.de"])
    def test_invalid_emails(self, email):
        assert email_format(email) == ["Invalid email format"]


class TestDataControl:
    """Test the generic pre-save validator."""

    def test_rule_on_unknown_column_is_rejected(self):
        with pytest.raises(ValueError):
            DataControl(TABLE, [FieldRule(field="nope", label="Nope")])

    async def test_valid_row_passes(self, mock_conn):
        control = DataControl(TABLE, RULES)
        mock_conn.fetchval.return_value = False

        await control.enforce(mock_conn, {"guid": 100001, "name": "Widget", "code": "W1"})

        assert mock_conn.fetchval.await_count == 2

    async def test_all_violations_are_aggregated(self, mock_conn):
        control = DataControl(TABLE, RULES)
        # Only the guid collides.
        mock_conn.fetchval.side_effect = lambda query, value, self_id: value == 100001

        with pytest.raises(UniquenessConflictError) as exc_info:
            await control.enforce(mock_conn, {"guid": 100001, "name": "", "code": None})

        error = exc_info.value
        assert error.violations == ["Name is required", "Code is required", "GUID already exists"]
        assert error.fields == ["guid"]
        assert error.message == "Name is required; Code is required; GUID already exists"
        assert isinstance(error, ValidationFailedError)

    async def test_missing_values_are_not_queried(self, mock_conn):
        control = DataControl(TABLE, RULES)

        with pytest.raises(ValidationFailedError) as exc_info:
            await control.enforce(mock_conn, {"guid": None, "name": "Widget", "code": "  "})

        assert not isinstance(exc_info.value, UniquenessConflictError)
        assert exc_info.value.violations == ["GUID is required", "Code is required"]
        mock_conn.fetchval.assert_not_awaited()

    async def test_value_failing_its_rule_is_not_queried(self, mock_conn):
        rules = (
            FieldRule(field="guid", label="GUID", required=True, unique=True, check=integer_value("GUID")),
            FieldRule(field="name", label="Name", required=True),
            FieldRule(field="code", label="Code", unique=True, max_length=2),
        )
        control = DataControl(TABLE, rules)
        mock_conn.fetchval.return_value = True

        with pytest.raises(ValidationFailedError) as exc_info:
            await control.enforce(mock_conn, {"guid": "abc", "name": "Widget", "code": "W12"})

        assert not isinstance(exc_info.value, UniquenessConflictError)
        assert exc_info.value.violations == ["GUID must be an integer", "Code too long (max 2 characters)"]
        mock_conn.fetchval.assert_not_awaited()

    async def test_uniqueness_excludes_own_id(self, mock_conn):
        control = DataControl(TABLE, RULES)
        mock_conn.fetchval.return_value = False

        await control.enforce(mock_conn, {"guid": 100001, "name": "Widget", "code": "W1"}, self_id=7)

        query, value, self_id = mock_conn.fetchval.await_args_list[0].args
        assert "id <> $2::integer" in query
        assert value == 100001
        assert self_id == 7

    async def test_extra_violations_come_first(self, mock_conn):
        control = DataControl(TABLE, RULES)
        mock_conn.fetchval.return_value = False

        with pytest.raises(ValidationFailedError) as exc_info:
            await control.enforce(
                mock_conn,
                {"guid": 100001, "name": "Widget", "code": "W1"},
                self_id=3,
                extra=["GUID cannot be changed"],
            )

        assert exc_info.value.violations == ["GUID cannot be changed"]
        assert exc_info.value.context == {"table": "pca_widget", "id": 3}
