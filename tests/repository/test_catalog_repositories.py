"""Tests for profils and formulas."""

import pytest

from pricera_store.errors import UniquenessConflictError, ValidationFailedError
from pricera_store.repository import FormulasRepository, ProfilsRepository


@pytest.fixture
def profils(scope, identifiers) -> ProfilsRepository:
    return ProfilsRepository(scope, identifiers)


@pytest.fixture
def formulas(scope, identifiers) -> FormulasRepository:
    return FormulasRepository(scope, identifiers)


@pytest.mark.domain_profils
class TestProfils:
    """Test profil references."""

    async def test_create(self, profils, fake_table, inserted):
        row = await profils.create({"name": " Surveyor ", "reference": "field-surveyor_01"})

        assert row["name"] == "Surveyor"
        assert row["reference"] == "field-surveyor_01"

    async def test_reference_characters(self, profils, fake_table, inserted):
        with pytest.raises(ValidationFailedError) as exc_info:
            await profils.create({"name": "Surveyor", "reference": "field surveyor!"})

        assert exc_info.value.violations == [
            "Reference must contain only alphanumeric characters, underscores, and hyphens"
        ]

    async def test_name_and_reference_are_unique(self, profils, fake_table, inserted):
        fake_table.taken |= {("name", "Surveyor"), ("reference", "surveyor")}

        with pytest.raises(UniquenessConflictError) as exc_info:
            await profils.create({"name": "Surveyor", "reference": "surveyor"})

        assert exc_info.value.fields == ["name", "reference"]


@pytest.mark.domain_formulas
class TestFormulas:
    """Test formula codes and amounts."""

    async def test_code_is_generated_when_absent(self, formulas, fake_table, inserted):
        row = await formulas.create({"name": "Premium", "amount": 5000})

        assert len(row["code"]) == 6

    async def test_supplied_code_is_kept(self, formulas, fake_table, inserted):
        row = await formulas.create({"name": "Premium", "code": " PREM ", "amount": 0})

        assert row["code"] == "PREM"

    @pytest.mark.parametrize("amount", [-1, 12.5, True])
    async def test_amount_must_be_non_negative_integer(self, formulas, fake_table, inserted, amount):
        with pytest.raises(ValidationFailedError, match="Amount must be a non-negative integer"):
            await formulas.create({"name": "Premium", "amount": amount})
