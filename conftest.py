"""Pytest configuration shared by unit and integration tests."""

from typing import Any

pytest_plugins = [
    "pytest_databases.docker.postgres",
]


def pytest_configure(config: Any) -> None:
    """Register custom markers for test organization."""
    # Domain markers
    config.addinivalue_line("markers", "domain_countries: Tests for countries domain")
    config.addinivalue_line("markers", "domain_companies: Tests for companies domain")
    config.addinivalue_line("markers", "domain_accounts: Tests for accounts domain")
    config.addinivalue_line("markers", "domain_profils: Tests for profils domain")
    config.addinivalue_line("markers", "domain_users: Tests for users domain")
    config.addinivalue_line("markers", "domain_formulas: Tests for formulas domain")
    config.addinivalue_line("markers", "domain_subscriptions: Tests for subscriptions domain")
    config.addinivalue_line("markers", "domain_products: Tests for products domain")
    config.addinivalue_line("markers", "domain_lexicons: Tests for lexicons domain")
    # Engine markers
    config.addinivalue_line("markers", "engine_geo: Tests for the point codec and distance")
    config.addinivalue_line("markers", "engine_transactions: Tests for transactions and connection scope")
    config.addinivalue_line("markers", "engine_identifiers: Tests for GUID and code generation")
    config.addinivalue_line("markers", "engine_validation: Tests for DataControl rules")
    config.addinivalue_line("markers", "engine_schema: Tests for table definitions and synchronisation")
    config.addinivalue_line("markers", "integration: Tests needing a PostgreSQL container")
