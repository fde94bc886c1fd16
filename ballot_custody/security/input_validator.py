# ballot_custody/security/input_validator.py

import re
import html
import bleach

# Validation and sanitization of registration, vote and verify payloads


class ValidationError(ValueError):
    pass


class InputValidator:
    def __init__(self):
        self.patterns = {
            'document_type': re.compile(r'^[A-Z]{1,5}$'),
            'document_number': re.compile(r'^[A-Za-z0-9-]{1,32}$'),
            'candidate_id': re.compile(r'^[A-Za-z0-9_-]{1,64}$'),
            'signature': re.compile(r'^[A-Za-z0-9+/=]{1,4096}$'),
            'component': re.compile(r'^[0-9a-fA-F]{1,1024}$'),
        }

    def sanitize_string(self, input_str, max_length=120):
        if not isinstance(input_str, str):
            raise ValidationError("Input must be a string")
        input_str = input_str[:max_length]
        sanitized = bleach.clean(html.escape(input_str), tags=[], attributes={}, strip=True)
        return sanitized.strip()

    def _match(self, name, value):
        return isinstance(value, str) and bool(self.patterns[name].match(value))

    def validate_document(self, document_type, document_number):
        if not self._match('document_type', document_type):
            raise ValidationError("Invalid document_type")
        if not self._match('document_number', document_number):
            raise ValidationError("Invalid document_number")
        return document_type, document_number

    def validate_candidate_id(self, candidate_id):
        if not self._match('candidate_id', candidate_id):
            raise ValidationError("Invalid candidate")
        return candidate_id

    def validate_registration(self, data):
        if not isinstance(data, dict):
            raise ValidationError("Registration data must be a JSON object")
        missing = [f for f in ('name', 'document_type', 'document_number') if not data.get(f)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        name = self.sanitize_string(data['name'])
        if not name:
            raise ValidationError("Invalid name")
        document_type, document_number = self.validate_document(data['document_type'], data['document_number'])
        return {
            'name': name,
            'document_type': document_type,
            'document_number': document_number,
            'password': data.get('password'),
        }

    def validate_vote_data(self, data):
        if not isinstance(data, dict):
            raise ValidationError("Vote data must be a JSON object")
        missing = [f for f in ('document_type', 'document_number', 'candidate') if not data.get(f)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        document_type, document_number = self.validate_document(data['document_type'], data['document_number'])
        return {
            'document_type': document_type,
            'document_number': document_number,
            'candidate': self.validate_candidate_id(data['candidate']),
        }

    def validate_verify_data(self, data):
        vote = self.validate_vote_data(data)
        signature = data.get('signature')
        r, s = data.get('r'), data.get('s')
        if signature is not None:
            if not self._match('signature', signature):
                raise ValidationError("Invalid signature text")
        elif r is not None and s is not None:
            if not self._match('component', r) or not self._match('component', s):
                raise ValidationError("Invalid signature components")
        else:
            raise ValidationError("Missing signature")
        vote.update({'signature': signature, 'r': r, 's': s})
        return vote
