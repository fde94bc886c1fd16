# ballot_custody/database/store.py

import logging
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from ballot_custody.database import models
from ballot_custody.database.records import (
    StoreError,
    UniqueConstraintViolation,
    VoteRecord,
    Voter,
)
from ballot_custody.encryption.signature_codec import (
    CodecError,
    ComponentSignature,
    OpaqueSignature,
    component_from_hex,
    component_to_hex,
    from_hex,
    to_hex,
)

logger = logging.getLogger(__name__)


def _voter_from_row(row) -> Voter:
    return Voter(
        id=row.id,
        name=row.name,
        document_type=row.document_type,
        document_number=row.document_number,
        public_key=row.public_key,
        private_key_envelope=row.private_key,
        password_hash=row.password_hash,
        created_at=row.created_at,
    )


def _signature_from_row(row):
    """Parse the stored signature columns; None when they cannot be read."""
    try:
        if row.r is not None and row.s is not None:
            return ComponentSignature(component_from_hex(row.r), component_from_hex(row.s))
        if row.signature:
            return OpaqueSignature(from_hex(row.signature))
    except CodecError as e:
        logger.warning(f"Vote {row.id} has a corrupt signature column: {e}")
        return None
    logger.warning(f"Vote {row.id} has no signature")
    return None


def _vote_from_row(row) -> VoteRecord:
    return VoteRecord(
        id=row.id,
        voter_id=row.voter_id,
        candidate=row.candidate,
        signature=_signature_from_row(row),
        created_at=row.created_at,
        transaction_id=row.transaction_id,
    )


class SqlVoteStore:
    """VoteStore backed by the Flask-SQLAlchemy session.

    Duplicate inserts are classified by re-reading the unique key after the
    rollback, so the result does not depend on driver error text.
    """

    def __init__(self, session):
        self.session = session

    def _query(self, statement):
        try:
            return self.session.execute(statement).scalars().first()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Store query failed: {e}")
            raise StoreError(str(e))

    def find_voter_by_document(self, document_type, document_number):
        row = self._query(select(models.Voter).filter_by(
            document_type=document_type, document_number=document_number))
        return _voter_from_row(row) if row is not None else None

    def find_voter_by_id(self, voter_id):
        row = self._query(select(models.Voter).filter_by(id=voter_id))
        return _voter_from_row(row) if row is not None else None

    def insert_voter(self, voter: Voter) -> Voter:
        row = models.Voter(
            name=voter.name,
            document_type=voter.document_type,
            document_number=voter.document_number,
            public_key=voter.public_key,
            private_key=voter.private_key_envelope,
            password_hash=voter.password_hash,
        )
        try:
            self.session.add(row)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            if self.find_voter_by_document(voter.document_type, voter.document_number) is not None:
                raise UniqueConstraintViolation('users', f"{voter.document_type}:{voter.document_number}")
            raise StoreError(str(e))
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreError(str(e))
        return _voter_from_row(row)

    def find_vote_by_voter(self, voter_id):
        row = self._query(select(models.Vote).filter_by(voter_id=voter_id))
        return _vote_from_row(row) if row is not None else None

    def insert_vote(self, record: VoteRecord) -> VoteRecord:
        row = models.Vote(
            voter_id=record.voter_id,
            candidate=record.candidate,
            transaction_id=record.transaction_id,
            created_at=record.created_at,
        )
        if isinstance(record.signature, ComponentSignature):
            row.r = component_to_hex(record.signature.r)
            row.s = component_to_hex(record.signature.s)
        else:
            row.signature = to_hex(record.signature.to_der())

        try:
            self.session.add(row)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            if self.find_vote_by_voter(record.voter_id) is not None:
                raise UniqueConstraintViolation('votes', f"voter_id={record.voter_id}")
            raise StoreError(str(e))
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreError(str(e))
        return _vote_from_row(row)

    def list_votes(self):
        try:
            return list(self.session.execute(select(models.Vote.candidate)).scalars())
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreError(str(e))
