# ballot_custody/voting/vote_guard.py

import logging
import secrets
import threading
from contextlib import contextmanager
from datetime import datetime
from ballot_custody.database.records import UniqueConstraintViolation, VoteRecord

logger = logging.getLogger(__name__)

# At most one accepted vote per voter.
#
# The lock registry only stops same-process bursts from doing redundant
# signing work; the store's unique constraint on votes.voter_id is what
# actually guarantees a single vote across processes and restarts.


class VotingError(Exception):
    """Base class for business-rule failures while registering or voting."""
    pass


class VoterNotFound(VotingError):
    pass


class VoterAlreadyRegistered(VotingError):
    pass


class AlreadyVoted(VotingError):
    pass


class LockContention(VotingError):
    """Another cast for the same voter is in progress; retry later."""
    pass


class VoteLockRegistry:
    def __init__(self):
        self._held = set()
        self._mutex = threading.Lock()

    def acquire(self, voter_key) -> bool:
        with self._mutex:
            if voter_key in self._held:
                return False
            self._held.add(voter_key)
            return True

    def release(self, voter_key):
        with self._mutex:
            self._held.discard(voter_key)

    def is_locked(self, voter_key) -> bool:
        with self._mutex:
            return voter_key in self._held

    def __len__(self):
        with self._mutex:
            return len(self._held)

    @contextmanager
    def hold(self, voter_key):
        if not self.acquire(voter_key):
            raise LockContention(f"Vote already in progress for voter {voter_key}")
        try:
            yield
        finally:
            self.release(voter_key)


class VoteGuard:
    def __init__(self, store, locks: VoteLockRegistry = None):
        self.store = store
        self.locks = locks if locks is not None else VoteLockRegistry()

    def cast(self, voter, candidate_id: str, sign) -> VoteRecord:
        """Sign and persist one vote for `voter` unless one already exists.

        `sign` is called with no arguments, only after the existence check
        passes, and must return the ballot signature. Errors from signing or
        the store propagate; the voter's lock is released on every path.
        """
        with self.locks.hold(voter.id):
            if self.store.find_vote_by_voter(voter.id) is not None:
                raise AlreadyVoted(f"Voter {voter.id} has already voted")

            record = VoteRecord(
                voter_id=voter.id,
                candidate=candidate_id,
                signature=sign(),
                created_at=datetime.utcnow(),
                transaction_id=secrets.token_hex(16),
            )
            try:
                return self.store.insert_vote(record)
            except UniqueConstraintViolation:
                # lost a race against another process that passed the pre-check too
                logger.warning(f"Concurrent duplicate vote rejected by store for voter {voter.id}")
                raise AlreadyVoted(f"Voter {voter.id} has already voted")
