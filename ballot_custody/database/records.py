# ballot_custody/database/records.py

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Protocol

# Plain records exchanged between the voting core and whatever row store
# backs it. ORM rows never leave the store adapter.


class StoreError(Exception):
    """Opaque upstream failure of the row store."""
    pass


class UniqueConstraintViolation(StoreError):
    """The store rejected an insert because a unique key already exists."""

    def __init__(self, table: str, key: str):
        super().__init__(f"Unique constraint violated on {table} ({key})")
        self.table = table
        self.key = key


@dataclass
class Voter:
    id: Optional[int]
    name: str
    document_type: str
    document_number: str
    public_key: str
    private_key_envelope: str = field(repr=False)
    password_hash: Optional[str] = field(default=None, repr=False)
    created_at: Optional[datetime] = None


@dataclass
class VoteRecord:
    voter_id: int
    candidate: str
    signature: object  # None when the stored columns are unreadable
    created_at: datetime = field(default_factory=datetime.utcnow)
    transaction_id: Optional[str] = None
    id: Optional[int] = None


class VoteStore(Protocol):
    """Exact-match row store the voting core depends on.

    Lookups return None when no row matches and raise StoreError when the
    query itself fails. Inserts raise UniqueConstraintViolation on a
    duplicate unique key.
    """

    def find_voter_by_document(self, document_type: str, document_number: str) -> Optional[Voter]:
        ...

    def find_voter_by_id(self, voter_id: int) -> Optional[Voter]:
        ...

    def insert_voter(self, voter: Voter) -> Voter:
        ...

    def find_vote_by_voter(self, voter_id: int) -> Optional[VoteRecord]:
        ...

    def insert_vote(self, record: VoteRecord) -> VoteRecord:
        ...

    def list_votes(self) -> Iterable[str]:
        ...
