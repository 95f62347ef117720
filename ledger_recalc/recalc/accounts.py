"""
Account Directory

Loads every account into an in-memory index keyed by account name.
The index is owned by the run that loaded it and passed explicitly to
the later stages.
"""

from ledger_recalc.audit import AuditLogger
from ledger_recalc.errors import ValidationError
from ledger_recalc.models.ledger import Account
from ledger_recalc.services.storage import Collection, PaginatedQuery, RecordStore


class AccountDirectory:
    """Reads the accounts collection into a name -> Account index."""

    def __init__(self, store: RecordStore, audit_logger: AuditLogger, page_size: int = 100):
        self._store = store
        self._audit = audit_logger
        self._page_size = page_size

    async def load_accounts(self) -> dict[str, Account]:
        """
        Load all accounts.

        Rows without a resolvable name are skipped. If two rows share a
        name, the later one wins.

        Raises:
            DataSourceError: If any page fetch fails
        """
        accounts: dict[str, Account] = {}
        skipped = 0

        query = PaginatedQuery(self._store, Collection.ACCOUNTS, page_size=self._page_size)
        async for record in query:
            try:
                account = Account.from_record(record)
            except ValidationError as e:
                skipped += 1
                self._audit.log_record_skipped(Collection.ACCOUNTS.value, record.id, str(e))
                continue
            accounts[account.name] = account

        self._audit.log_accounts_loaded(len(accounts), skipped)
        return accounts
