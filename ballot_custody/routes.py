# ballot_custody/routes.py

# JSON API for voter registration, login, casting, verification and tally.
# All voting rules live in VotingService; this module only maps HTTP to it.

import logging
from flask import request, jsonify
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
from ballot_custody import app, limiter, db, custodian
from ballot_custody.audit.audit_logger import AuditLogger, load_signing_key
from ballot_custody.database.records import StoreError
from ballot_custody.database.store import SqlVoteStore
from ballot_custody.encryption.ballot_signer import BallotSigner
from ballot_custody.encryption.password_hashing import PasswordHashingService
from ballot_custody.encryption.signature_codec import CodecError, ComponentSignature, component_to_hex
from ballot_custody.security.input_validator import InputValidator, ValidationError
from ballot_custody.voting.service import VoterRef, VotingService
from ballot_custody.voting.verifier import SignatureVerifier, parse_signature
from ballot_custody.voting.vote_guard import (
    AlreadyVoted,
    LockContention,
    VoteGuard,
    VoterAlreadyRegistered,
    VoterNotFound,
)

logger = logging.getLogger(__name__)

store = SqlVoteStore(db.session)
audit_logger = AuditLogger(
    log_dir=app.config['AUDIT_LOG_DIR'],
    signing_key=load_signing_key(app.config['AUDIT_SIGNING_KEY_FILE']),
)
password_service = PasswordHashingService()
validator = InputValidator()
voting_service = VotingService(
    store=store,
    custodian=custodian,
    signer=BallotSigner(app.config['SIGNATURE_FORMAT']),
    guard=VoteGuard(store),
    verifier=SignatureVerifier(store),
    audit_logger=audit_logger,
)


def signature_payload(signature) -> dict:
    if signature is None:
        return {'signature': None}
    payload = {'signature': signature.to_text()}
    if isinstance(signature, ComponentSignature):
        payload['r'] = component_to_hex(signature.r)
        payload['s'] = component_to_hex(signature.s)
    return payload


@app.errorhandler(StoreError)
def handle_store_error(e):
    logger.error(f"Store unavailable: {e}")
    return jsonify({'error': 'Storage unavailable, please try again later'}), 503


@app.route('/api/users/register', methods=['POST'])
def register_user():
    try:
        data = validator.validate_registration(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    password_hash = None
    if data['password']:
        try:
            password_hash = password_service.hash_password(data['password'])
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

    try:
        voter = voting_service.register_voter(
            data['name'], data['document_type'], data['document_number'], password_hash=password_hash)
    except VoterAlreadyRegistered as e:
        return jsonify({'error': str(e)}), 409

    return jsonify({
        'message': 'Voter registered',
        'user': {
            'id': voter.id,
            'name': voter.name,
            'document_type': voter.document_type,
            'document_number': voter.document_number,
            'public_key': voter.public_key,
        },
    }), 201


@app.route('/api/users/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    try:
        document_type, document_number = validator.validate_document(
            data.get('document_type'), data.get('document_number'))
    except ValidationError:
        return jsonify({'error': 'Invalid credentials'}), 401

    voter = store.find_voter_by_document(document_type, document_number)
    if voter is None or not password_service.verify_password(data.get('password'), voter.password_hash):
        audit_logger.log_security_event('failed_login', {'ip': request.remote_addr})
        return jsonify({'error': 'Invalid credentials'}), 401

    token = create_access_token(identity=str(voter.id))
    return jsonify({'token': token, 'user_id': voter.id})


@app.route('/api/votes/vote', methods=['POST'])
@jwt_required()
@limiter.limit(lambda: app.config['VOTE_RATE_LIMIT'])
def vote():
    try:
        data = validator.validate_vote_data(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    try:
        voter = voting_service.resolve_voter(
            VoterRef.by_document(data['document_type'], data['document_number']))
        if str(voter.id) != str(get_jwt_identity()):
            audit_logger.log_security_event(
                'vote_identity_mismatch', {'token_identity': get_jwt_identity()}, user_id=voter.id)
            return jsonify({'error': 'Token does not belong to this voter'}), 403
        record = voting_service.cast_vote(VoterRef.by_id(voter.id), data['candidate'])
    except VoterNotFound as e:
        return jsonify({'error': str(e)}), 404
    except AlreadyVoted:
        return jsonify({'error': 'Duplicate vote detected'}), 409
    except LockContention:
        return jsonify({'error': 'Vote in progress, please try again'}), 429
    except StoreError:
        raise
    except Exception as e:
        logger.exception(f"Vote failed: {type(e).__name__}")
        return jsonify({'error': 'Failed to cast vote'}), 500

    response = {
        'message': 'Vote recorded successfully',
        'candidate': record.candidate,
        'transaction_id': record.transaction_id,
    }
    response.update(signature_payload(record.signature))
    return jsonify(response)


@app.route('/api/votes/verify', methods=['POST'])
@jwt_required()
def verify_vote():
    try:
        data = validator.validate_verify_data(request.get_json(silent=True))
        signature = parse_signature(data['signature'], data['r'], data['s'])
    except (ValidationError, CodecError) as e:
        return jsonify({'valid': False, 'message': str(e)}), 400

    result = voting_service.verify_vote(
        VoterRef.by_document(data['document_type'], data['document_number']),
        data['candidate'],
        signature,
    )
    return jsonify(result.to_dict())


@app.route('/api/votes/has-voted/<int:voter_id>', methods=['GET'])
def has_voted(voter_id):
    record = voting_service.has_voted(voter_id)
    if record is None:
        return jsonify({'hasVoted': False})
    response = {
        'hasVoted': True,
        'candidate': record.candidate,
        'created_at': record.created_at.isoformat() if record.created_at else None,
    }
    response.update(signature_payload(record.signature))
    return jsonify(response)


@app.route('/api/votes/count', methods=['GET'])
def count_votes():
    return jsonify(voting_service.count_votes())
