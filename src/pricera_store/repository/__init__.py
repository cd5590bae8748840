"""Repository layer for data access."""

from .accounts_repository import ACCOUNT_TABLE, AccountsRepository
from .base import BaseRepository, EntityRepository, Row
from .companies_repository import COMPANY_TABLE, CompaniesRepository
from .countries_repository import COUNTRY_TABLE, CountriesRepository
from .formulas_repository import FORMULA_TABLE, FormulasRepository
from .lexicons_repository import LEXICON_TABLE, LexiconsRepository
from .products_repository import PRODUCT_TABLE, ProductsRepository
from .profils_repository import PROFIL_TABLE, ProfilsRepository
from .subscriptions_repository import SUBSCRIPTION_TABLE, SubscriptionsRepository
from .users_repository import USER_TABLE, UsersRepository

ALL_TABLES = (
    COUNTRY_TABLE,
    COMPANY_TABLE,
    ACCOUNT_TABLE,
    PROFIL_TABLE,
    USER_TABLE,
    FORMULA_TABLE,
    SUBSCRIPTION_TABLE,
    PRODUCT_TABLE,
    LEXICON_TABLE,
)

__all__ = [
    "ALL_TABLES",
    "AccountsRepository",
    "BaseRepository",
    "CompaniesRepository",
    "CountriesRepository",
    "EntityRepository",
    "FormulasRepository",
    "LexiconsRepository",
    "ProductsRepository",
    "ProfilsRepository",
    "Row",
    "SubscriptionsRepository",
    "UsersRepository",
]
