# ballot_custody/voting/service.py

import logging
from dataclasses import dataclass
from typing import Optional
from ballot_custody.database.records import StoreError, UniqueConstraintViolation, Voter
from ballot_custody.encryption.ballot_signer import SigningError
from ballot_custody.encryption.envelope_cipher import EnvelopeError
from ballot_custody.voting.tally import tally_votes
from ballot_custody.voting.verifier import VerificationResult
from ballot_custody.voting.vote_guard import (
    AlreadyVoted,
    LockContention,
    VoterAlreadyRegistered,
    VoterNotFound,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoterRef:
    """Identifies a voter either by internal id or by document pair."""
    voter_id: Optional[int] = None
    document_type: Optional[str] = None
    document_number: Optional[str] = None

    @classmethod
    def by_id(cls, voter_id):
        return cls(voter_id=voter_id)

    @classmethod
    def by_document(cls, document_type, document_number):
        return cls(document_type=document_type, document_number=document_number)

    def describe(self) -> str:
        if self.voter_id is not None:
            return f"id={self.voter_id}"
        return f"{self.document_type}:{self.document_number}"


class VotingService:
    """Registration, casting, lookup, verification and tally of signed votes."""

    def __init__(self, store, custodian, signer, guard, verifier, audit_logger=None):
        self.store = store
        self.custodian = custodian
        self.signer = signer
        self.guard = guard
        self.verifier = verifier
        self.audit_logger = audit_logger

    def _audit(self, event_type, data, voter_id=None):
        if self.audit_logger is not None:
            self.audit_logger.log_security_event(event_type, data, user_id=voter_id)

    def resolve_voter(self, ref: VoterRef) -> Voter:
        if ref.voter_id is not None:
            voter = self.store.find_voter_by_id(ref.voter_id)
        else:
            voter = self.store.find_voter_by_document(ref.document_type, ref.document_number)
        if voter is None:
            raise VoterNotFound(f"Voter not found ({ref.describe()})")
        return voter

    def register_voter(self, name, document_type, document_number, password_hash=None) -> Voter:
        if self.store.find_voter_by_document(document_type, document_number) is not None:
            raise VoterAlreadyRegistered(f"Voter {document_type}:{document_number} is already registered")

        keys = self.custodian.issue()
        voter = Voter(
            id=None,
            name=name,
            document_type=document_type,
            document_number=document_number,
            public_key=keys.public_key_pem,
            private_key_envelope=keys.private_key_envelope,
            password_hash=password_hash,
        )
        try:
            voter = self.store.insert_voter(voter)
        except UniqueConstraintViolation:
            raise VoterAlreadyRegistered(f"Voter {document_type}:{document_number} is already registered")
        self._audit('voter_registered', {'document_type': document_type}, voter_id=voter.id)
        logger.info(f"Registered voter {voter.id}")
        return voter

    def cast_vote(self, ref: VoterRef, candidate_id: str):
        voter = self.resolve_voter(ref)

        def sign():
            return self.custodian.sign_with(voter.private_key_envelope, candidate_id, self.signer)

        try:
            record = self.guard.cast(voter, candidate_id, sign)
        except AlreadyVoted:
            self._audit('duplicate_vote_attempt', {}, voter_id=voter.id)
            raise
        except LockContention:
            self._audit('vote_lock_contention', {}, voter_id=voter.id)
            raise
        except (EnvelopeError, SigningError, StoreError) as e:
            logger.error(f"Vote for voter {voter.id} aborted: {type(e).__name__}")
            self._audit('vote_error', {'error': type(e).__name__}, voter_id=voter.id)
            raise

        self._audit('vote_cast', {
            'vote_id': record.id,
            'transaction_id': record.transaction_id,
        }, voter_id=voter.id)
        logger.info(f"Vote recorded for voter {voter.id}")
        return record

    def has_voted(self, voter_id):
        """Return the stored VoteRecord for the voter, or None."""
        return self.store.find_vote_by_voter(voter_id)

    def verify_vote(self, ref: VoterRef, candidate_id: str, signature) -> VerificationResult:
        try:
            voter = self.resolve_voter(ref)
        except VoterNotFound as e:
            return VerificationResult(False, str(e))
        result = self.verifier.verify_recorded(voter, candidate_id, signature)
        self._audit('vote_verified', {'valid': result.valid}, voter_id=voter.id)
        return result

    def count_votes(self):
        return tally_votes(self.store.list_votes())
