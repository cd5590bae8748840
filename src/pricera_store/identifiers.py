"""Surrogate GUID and secondary code generation.

GUIDs are probed linearly from ``10^(length-1) + (max(id) + 1)`` until a value
absent from the table's ``guid`` column is found. The probe and the later
insert are not atomic: two concurrent creates can pick the same candidate, and
the unique constraint on ``guid`` turns the loser into an insert failure.
"""

from __future__ import annotations

import secrets
import string
from logging import getLogger

from asyncpg import Connection

from .errors import IdentifierExhaustedError
from .schema import quote_ident
from .transactions import ConnectionScope

log = getLogger(__name__)

__all__ = ("CODE_ALPHABET", "IdentifierGenerator")

CODE_ALPHABET = string.ascii_uppercase + string.digits


class IdentifierGenerator:
    """Derives unique identifiers for new rows."""

    def __init__(self, scope: ConnectionScope) -> None:
        """Initialize generator.

        Args:
            scope: Connection scope used for the probing queries.
        """
        self._scope = scope

    async def generate_guid(
        self,
        table: str,
        *,
        length: int = 6,
        seed: int | None = None,
        conn: Connection | None = None,
    ) -> int:
        """Find the first free GUID at or after the starting candidate.

        Args:
            table: Table name.
            length: Digit length floor; candidates start at ``10^(length-1)``.
            seed: Explicit first candidate. Derived from the table's max id when omitted.
            conn: Optional connection for transaction support.

        Returns:
            A GUID not present in the table at probe time.

        Raises:
            ValueError: If ``length`` is below 1.
        """
        if length < 1:
            raise ValueError("GUID length must be at least 1.")

        _conn = self._scope.resolve(conn)
        quoted = quote_ident(table)
        if seed is None:
            last_id = await _conn.fetchval(f"SELECT COALESCE(MAX(id), 0) FROM {quoted};")
            seed = 10 ** (length - 1) + (last_id + 1)

        candidate = seed
        query = f"SELECT EXISTS(SELECT 1 FROM {quoted} WHERE guid = $1);"
        while await _conn.fetchval(query, candidate):
            log.debug("GUID %s already used in %s, probing next", candidate, table)
            candidate += 1
        return candidate

    async def generate_code(
        self,
        table: str,
        *,
        column: str = "code",
        length: int = 6,
        conn: Connection | None = None,
        max_attempts: int = 64,
    ) -> str:
        """Draw random alphanumeric codes until one is unused.

        Args:
            table: Table name.
            column: Column holding the codes.
            length: Code length.
            conn: Optional connection for transaction support.
            max_attempts: Collisions tolerated before giving up.

        Returns:
            An unused code made of ``A-Z0-9``.

        Raises:
            IdentifierExhaustedError: If every attempt collided.
        """
        if length < 1:
            raise ValueError("Code length must be at least 1.")

        _conn = self._scope.resolve(conn)
        query = f"SELECT EXISTS(SELECT 1 FROM {quote_ident(table)} WHERE {quote_ident(column)} = $1);"
        for _ in range(max_attempts):
            code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
            if not await _conn.fetchval(query, code):
                return code
            log.debug("Code %s already used in %s.%s, drawing again", code, table, column)
        raise IdentifierExhaustedError(table, column, max_attempts)
