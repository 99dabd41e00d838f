"""
Directory of known structured codes (transactions, roles, positions).

Used by the intent classifier to confirm that a code-shaped token really
is a known code before routing on it.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional, Set

from ..domain.repositories import IBlobStore, ICodeDirectory
from .document_store import AsyncInitializer

logger = logging.getLogger(__name__)


def _codes(entries: Iterable[Any]) -> Set[str]:
    codes = set()
    for entry in entries or []:
        if isinstance(entry, dict):
            code = entry.get("code") or entry.get("id")
        else:
            code = entry
        if code:
            codes.add(str(code).strip().upper())
    return codes


class CodeDirectory(ICodeDirectory):
    """
    Lookup dictionary loaded from a blob shaped like
    {"transactions": [...], "roles": [...], "positions": [...]}.

    Entries may be plain code strings or objects with a "code" field.
    """

    def __init__(
        self,
        blob_store: Optional[IBlobStore] = None,
        blob_name: str = "sap-lookup.json",
        transactions: Iterable[str] = (),
        roles: Iterable[str] = (),
        positions: Iterable[str] = (),
    ):
        self.blob_store = blob_store
        self.blob_name = blob_name
        self._transactions = _codes(transactions)
        self._roles = _codes(roles)
        self._positions = _codes(positions)
        self._init = AsyncInitializer("code-directory", self._load)

    @property
    def is_initialized(self) -> bool:
        return self._init.is_initialized

    @property
    def is_available(self) -> bool:
        return bool(self._transactions or self._roles or self._positions)

    async def ensure_initialized(self) -> None:
        await self._init.ensure_initialized()

    async def _load(self) -> None:
        if self.blob_store is None:
            return
        loop = asyncio.get_running_loop()
        raw: Dict[str, Any] = await loop.run_in_executor(
            None, self.blob_store.load, self.blob_name, {}
        )
        if not isinstance(raw, dict):
            logger.warning(f"Code directory blob '{self.blob_name}' has unexpected shape")
            return
        self._transactions |= _codes(raw.get("transactions", []))
        self._roles |= _codes(raw.get("roles", []))
        self._positions |= _codes(raw.get("positions", []))
        logger.info(
            f"Code directory loaded: {len(self._transactions)} transactions, "
            f"{len(self._roles)} roles, {len(self._positions)} positions"
        )

    def has_transaction(self, code: str) -> bool:
        return code.upper() in self._transactions

    def has_role(self, code: str) -> bool:
        return code.upper() in self._roles

    def has_position(self, code: str) -> bool:
        return code.upper() in self._positions

    def knows(self, code: str) -> bool:
        return self.has_transaction(code) or self.has_role(code) or self.has_position(code)
