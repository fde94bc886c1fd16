import os
import tempfile
import threading

# The application reads its settings at import time.
os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('ENVELOPE_MASTER_KEY', '11' * 32)
os.environ.setdefault('JWT_SECRET_KEY', 'test-jwt-secret-with-enough-length-0123456789')
os.environ.setdefault('DSA_KEY_SIZE', '1024')
os.environ.setdefault('VOTE_RATE_LIMIT', '1000/minute')
os.environ.setdefault('AUDIT_LOG_DIR', tempfile.mkdtemp(prefix='ballot-audit-'))

import pytest

from ballot_custody.database.records import UniqueConstraintViolation
from ballot_custody.encryption.ballot_signer import BallotSigner
from ballot_custody.encryption.key_custodian import KeyCustodian
from ballot_custody.voting.service import VotingService
from ballot_custody.voting.verifier import SignatureVerifier
from ballot_custody.voting.vote_guard import VoteGuard

MASTER_KEY = bytes(range(32))


class MemoryVoteStore:
    """In-memory VoteStore with the same unique-key behaviour as the tables."""

    def __init__(self):
        self._lock = threading.Lock()
        self.voters = {}
        self.votes = {}
        self._next_id = 1

    def find_voter_by_document(self, document_type, document_number):
        for voter in self.voters.values():
            if (voter.document_type, voter.document_number) == (document_type, document_number):
                return voter
        return None

    def find_voter_by_id(self, voter_id):
        return self.voters.get(voter_id)

    def insert_voter(self, voter):
        with self._lock:
            if self.find_voter_by_document(voter.document_type, voter.document_number):
                raise UniqueConstraintViolation('users', voter.document_number)
            voter.id = self._next_id
            self._next_id += 1
            self.voters[voter.id] = voter
            return voter

    def find_vote_by_voter(self, voter_id):
        return self.votes.get(voter_id)

    def insert_vote(self, record):
        with self._lock:
            if record.voter_id in self.votes:
                raise UniqueConstraintViolation('votes', str(record.voter_id))
            record.id = len(self.votes) + 1
            self.votes[record.voter_id] = record
            return record

    def list_votes(self):
        return [v.candidate for v in self.votes.values()]


@pytest.fixture(scope='session')
def custodian():
    # shared so DSA domain parameters are generated once per test run
    return KeyCustodian(MASTER_KEY, key_size=1024)


@pytest.fixture(scope='session')
def keypair(custodian):
    return custodian.generate_keypair()


@pytest.fixture
def memory_store():
    return MemoryVoteStore()


@pytest.fixture
def make_service(custodian, tmp_path):
    from ballot_custody.audit.audit_logger import AuditLogger

    def _make(store=None, signature_format='opaque', guard=None):
        store = store if store is not None else MemoryVoteStore()
        return VotingService(
            store=store,
            custodian=custodian,
            signer=BallotSigner(signature_format),
            guard=guard or VoteGuard(store),
            verifier=SignatureVerifier(store),
            audit_logger=AuditLogger(log_dir=str(tmp_path / 'audit')),
        )
    return _make
