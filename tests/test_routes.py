import pytest
from flask_jwt_extended import create_access_token
from ballot_custody import app, db
from ballot_custody.database import models
from ballot_custody.database.records import StoreError
from ballot_custody.routes import store


@pytest.fixture
def client():
    app.config['TESTING'] = True
    with app.app_context():
        db.create_all()
        with app.test_client() as client:
            yield client
        db.session.remove()
        db.drop_all()


def _register(client, number='123', password='secreto123'):
    return client.post('/api/users/register', json={
        'name': 'Ana Gomez',
        'document_type': 'CC',
        'document_number': number,
        'password': password,
    })


def _auth(voter_id):
    return {'Authorization': f'Bearer {create_access_token(identity=str(voter_id))}'}


def _vote(client, voter_id, candidate='candidato2', number='123'):
    return client.post('/api/votes/vote', headers=_auth(voter_id), json={
        'document_type': 'CC', 'document_number': number, 'candidate': candidate,
    })


def test_register_returns_public_key_only(client):
    resp = _register(client)
    assert resp.status_code == 201
    user = resp.get_json()['user']
    assert user['public_key'].startswith('-----BEGIN PUBLIC KEY-----')
    assert 'private_key' not in user


def test_register_duplicate_document(client):
    assert _register(client).status_code == 201
    resp = _register(client)
    assert resp.status_code == 409


def test_register_rejects_missing_fields(client):
    resp = client.post('/api/users/register', json={'name': 'Ana'})
    assert resp.status_code == 400


def test_login_issues_token(client):
    _register(client)
    resp = client.post('/api/users/login', json={
        'document_type': 'CC', 'document_number': '123', 'password': 'secreto123'})
    assert resp.status_code == 200
    assert resp.get_json()['token']

    bad = client.post('/api/users/login', json={
        'document_type': 'CC', 'document_number': '123', 'password': 'wrong-pass1'})
    assert bad.status_code == 401


def test_vote_requires_token(client):
    resp = client.post('/api/votes/vote', json={
        'document_type': 'CC', 'document_number': '123', 'candidate': 'candidato2'})
    assert resp.status_code == 403


def test_full_http_scenario(client):
    voter_id = _register(client).get_json()['user']['id']

    resp = _vote(client, voter_id)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['candidate'] == 'candidato2'
    signature = body['signature']

    status = client.get(f'/api/votes/has-voted/{voter_id}').get_json()
    assert status['hasVoted'] is True
    assert status['candidate'] == 'candidato2'
    assert status['signature'] == signature

    again = _vote(client, voter_id, candidate='candidato1')
    assert again.status_code == 409
    assert again.get_json()['error'] == 'Duplicate vote detected'

    verify = client.post('/api/votes/verify', headers=_auth(voter_id), json={
        'document_type': 'CC', 'document_number': '123',
        'candidate': 'candidato2', 'signature': signature})
    assert verify.status_code == 200
    assert verify.get_json()['valid'] is True

    swapped = client.post('/api/votes/verify', headers=_auth(voter_id), json={
        'document_type': 'CC', 'document_number': '123',
        'candidate': 'candidato3', 'signature': signature})
    assert swapped.get_json()['valid'] is False

    assert client.get('/api/votes/count').get_json() == {'candidato2': 1}


def test_vote_with_someone_elses_token(client):
    first = _register(client, number='111').get_json()['user']['id']
    _register(client, number='222')
    resp = _vote(client, first, number='222')
    assert resp.status_code == 403
    assert client.get('/api/votes/count').get_json() == {}


def test_vote_unknown_voter(client):
    resp = _vote(client, 1, number='999')
    assert resp.status_code == 404


def test_has_voted_false(client):
    voter_id = _register(client).get_json()['user']['id']
    assert client.get(f'/api/votes/has-voted/{voter_id}').get_json() == {'hasVoted': False}


def test_verify_malformed_signature_answers_invalid(client):
    voter_id = _register(client).get_json()['user']['id']
    resp = client.post('/api/votes/verify', headers=_auth(voter_id), json={
        'document_type': 'CC', 'document_number': '123',
        'candidate': 'candidato2', 'signature': 'not a signature!'})
    assert resp.status_code == 400
    assert resp.get_json()['valid'] is False


def test_verify_unknown_voter_answers_invalid(client):
    resp = client.post('/api/votes/verify', headers=_auth(1), json={
        'document_type': 'CC', 'document_number': '999',
        'candidate': 'candidato2', 'signature': '3006020101020102'})
    assert resp.status_code == 200
    assert resp.get_json()['valid'] is False


def test_store_failure_is_503(client, monkeypatch):
    def broken():
        raise StoreError('database unreachable')

    monkeypatch.setattr(store, 'list_votes', broken)
    resp = client.get('/api/votes/count')
    assert resp.status_code == 503


def test_corrupt_vote_row_is_reported_not_503(client):
    voter_id = _register(client).get_json()['user']['id']
    db.session.add(models.Vote(voter_id=voter_id, candidate='candidato2', signature='zz'))
    db.session.commit()

    status = client.get(f'/api/votes/has-voted/{voter_id}')
    assert status.status_code == 200
    assert status.get_json()['hasVoted'] is True
    assert status.get_json()['signature'] is None

    verify = client.post('/api/votes/verify', headers=_auth(voter_id), json={
        'document_type': 'CC', 'document_number': '123',
        'candidate': 'candidato2', 'signature': '3006020101020102'})
    assert verify.status_code == 200
    assert verify.get_json()['valid'] is False

    # the row still counts as a cast vote
    assert _vote(client, voter_id).status_code == 409


def test_login_with_non_string_password(client):
    _register(client)
    resp = client.post('/api/users/login', json={
        'document_type': 'CC', 'document_number': '123', 'password': 12345678})
    assert resp.status_code == 401
