"""
JSON File Storage Implementation

Keeps the whole ledger in a single JSON document on disk - the local
equivalent of a browser's serialized local storage.

TRADEOFFS:
- The full document is rewritten on every change (fine for personal use)
- Single-process only; two processes writing the same file race
"""

import os
import tempfile
from pathlib import Path
from typing import Optional, Union

import structlog
from pydantic import BaseModel, ValidationError

from src.models.ledger import (
    Account,
    Budget,
    Category,
    Debt,
    Expense,
    FinanceSettings,
    Income,
    RecordKind,
    SavingGoal,
    Transfer,
)
from src.services.storage.interface import StorageError
from src.services.storage.memory import InMemoryRecordStore


class LedgerDocument(BaseModel):
    """On-disk shape of the ledger. Settings stay null until first saved."""

    settings: Optional[FinanceSettings] = None
    accounts: list[Account] = []
    categories: list[Category] = []
    expenses: list[Expense] = []
    incomes: list[Income] = []
    transfers: list[Transfer] = []
    budgets: list[Budget] = []
    saving_goals: list[SavingGoal] = []
    debts: list[Debt] = []


class JsonFileRecordStore(InMemoryRecordStore):
    """
    Record store persisted to a JSON file.

    The file is read once on construction and rewritten atomically
    (temp file + rename) after every change. A change whose write
    fails is undone in memory as well.
    """

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self._path = Path(path)
        self._logger = structlog.get_logger(__name__)
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            document = LedgerDocument.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise StorageError(f"Failed to read ledger file {self._path}: {e}")

        for kind in RecordKind:
            for record in getattr(document, kind.value):
                self._collections[kind][record.id] = record
        self._settings = document.settings

        self._logger.info(
            "ledger_file_loaded",
            path=str(self._path),
            records=sum(len(c) for c in self._collections.values()),
        )

    async def _after_write(self) -> None:
        document = LedgerDocument(
            settings=self._settings,
            **{kind.value: list(self._collections[kind].values()) for kind in RecordKind},
        )
        payload = document.model_dump_json(indent=2)

        tmp_path: Optional[str] = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self._path)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            self._logger.warning("ledger_file_write_failed", path=str(self._path), error=str(e))
            raise StorageError(f"Failed to write ledger file {self._path}: {e}")
