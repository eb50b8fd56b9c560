"""Abstract interface for live-database catalog access.

The sync engine only needs four things from the live database: whether a
procedure exists, what definition the server holds for it, which procedures
exist at all, and a way to apply an artifact.  Any backend satisfying
:class:`CatalogInterface` can be plugged in.
"""

from __future__ import annotations

from typing import Protocol


class CatalogInterface(Protocol):
    """Structural interface for live-database introspection and DDL application.

    Implementations are **not** required to subclass this protocol; they only
    need to expose methods with matching signatures (duck typing).
    """

    async def procedure_exists(self, name: str) -> bool:
        """Return ``True`` iff a routine of type PROCEDURE named *name* exists.

        Raises
        ------
        CatalogQueryError
            If the catalog cannot be queried.
        """
        ...

    async def get_definition(self, name: str) -> str | None:
        """Return the server-held definition of *name*.

        ``None`` when the procedure is absent or the server does not expose
        its body (for example, insufficient privileges).

        Raises
        ------
        CatalogQueryError
            If the catalog cannot be queried.
        """
        ...

    async def list_procedures(self) -> set[str]:
        """Return the names of every procedure in the active schema.

        Raises
        ------
        CatalogQueryError
            If the catalog cannot be queried.
        """
        ...

    async def apply_artifact(self, raw_sql: str) -> None:
        """Execute the artifact's DROP + CREATE batch in a single round trip.

        Raises
        ------
        DdlApplyError
            If the server rejects the batch or the call times out.
        """
        ...
