"""
Query Execution Engine

DESIGN DECISION: Query execution is DETERMINISTIC.
List screens describe what they want as a RecordQuery; this engine
filters the ledger snapshot and returns exactly the matching records.
Nothing is estimated and nothing is converted: records come back as
stored, in their account's currency.

Ordering is newest first. Records on the same date keep their
insertion order.
"""

from datetime import date
from typing import Callable, Optional, Sequence, TypeVar

from src.models.ledger import Expense, Income, Ledger, LedgerRecord, RecordKind, Transfer
from src.models.reports import QueryResult, RecordQuery


R = TypeVar("R", Expense, Income, Transfer)


class QueryExecutor:
    """
    Executes record queries against a ledger snapshot.

    GUARANTEES:
    - Only returns real records from the ledger
    - Clear "no data found" if nothing matches
    """

    def expenses(self, ledger: Ledger, query: RecordQuery) -> QueryResult:
        def matches(expense: Expense) -> bool:
            if query.category_id and expense.category_id != query.category_id:
                return False
            if query.account_id and expense.account_id != query.account_id:
                return False
            if query.budget_id and expense.budget_id != query.budget_id:
                return False
            return True

        return self._execute(RecordKind.EXPENSES, ledger.expenses, query, matches)

    def incomes(self, ledger: Ledger, query: RecordQuery) -> QueryResult:
        def matches(income: Income) -> bool:
            if query.category_id and income.category_id != query.category_id:
                return False
            if query.account_id and income.account_id != query.account_id:
                return False
            return True

        return self._execute(RecordKind.INCOMES, ledger.incomes, query, matches)

    def transfers(self, ledger: Ledger, query: RecordQuery) -> QueryResult:
        def matches(transfer: Transfer) -> bool:
            if query.from_account_id and transfer.from_account_id != query.from_account_id:
                return False
            if query.to_account_id and transfer.to_account_id != query.to_account_id:
                return False
            if query.account_id and query.account_id not in (
                transfer.from_account_id,
                transfer.to_account_id,
            ):
                return False
            return True

        return self._execute(RecordKind.TRANSFERS, ledger.transfers, query, matches)

    def _execute(
        self,
        kind: RecordKind,
        records: Sequence[R],
        query: RecordQuery,
        matches: Callable[[R], bool],
    ) -> QueryResult:
        needle = query.search.strip().lower() if query.search else ""

        found: list[LedgerRecord] = []
        for record in records:
            if needle and needle not in record.name.lower():
                continue
            if query.date_from and record.date < query.date_from:
                continue
            if query.date_to and record.date > query.date_to:
                continue
            if not matches(record):
                continue
            found.append(record)

        # sort() is stable, so same-day records keep insertion order
        found.sort(key=lambda r: r.date, reverse=True)
        limited = found[:query.limit] if query.limit else found

        return QueryResult(
            query_id=query.query_id,
            record_kind=kind,
            data_found=len(limited) > 0,
            result_count=len(limited),
            total_matches=len(found),
            records=limited,
            query_description=self._describe(kind, query),
        )

    def _describe(self, kind: RecordKind, query: RecordQuery) -> str:
        """Human-readable summary of the filters, for list headers."""
        desc_parts = [f"Listing {kind.value}"]
        if query.search:
            desc_parts.append(f"matching '{query.search.strip()}'")
        if query.category_id:
            desc_parts.append(f"category: {query.category_id}")
        if query.account_id:
            desc_parts.append(f"account: {query.account_id}")
        if query.from_account_id:
            desc_parts.append(f"from: {query.from_account_id}")
        if query.to_account_id:
            desc_parts.append(f"to: {query.to_account_id}")
        if query.budget_id:
            desc_parts.append(f"budget: {query.budget_id}")
        if query.date_from or query.date_to:
            desc_parts.append(self._date_range_str(query.date_from, query.date_to))
        return " | ".join(desc_parts)

    def _date_range_str(
        self,
        date_from: Optional[date],
        date_to: Optional[date],
    ) -> str:
        """Format date range for description."""
        if date_from and date_to:
            if date_from == date_to:
                return f"on {date_from.strftime('%d %b %Y')}"
            elif date_from.year == date_to.year:
                return f"from {date_from.strftime('%d %b')} to {date_to.strftime('%d %b %Y')}"
            else:
                return f"from {date_from.strftime('%d %b %Y')} to {date_to.strftime('%d %b %Y')}"
        elif date_from:
            return f"from {date_from.strftime('%d %b %Y')}"
        elif date_to:
            return f"until {date_to.strftime('%d %b %Y')}"
        return ""
