# ballot_custody/audit/audit_logger.py

import os
import json
import hashlib
import base64
import logging
import threading
from datetime import datetime
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives import serialization

logger = logging.getLogger(__name__)


def load_signing_key(key_file):
    """Load the Ed25519 audit key from key_file, creating it on first start.

    Every process that appends to the same log must sign with this key,
    otherwise the chain no longer verifies after a restart.
    """
    if not os.path.exists(key_file):
        key = Ed25519PrivateKey.generate()
        pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption())
        os.makedirs(os.path.dirname(key_file) or '.', exist_ok=True)
        staging = f"{key_file}.{os.getpid()}"
        fd = os.open(staging, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'wb') as f:
            f.write(pem)
        try:
            # link is atomic and fails if another worker won the race
            os.link(staging, key_file)
        except FileExistsError:
            pass
        else:
            logger.info(f"Created audit signing key {key_file}")
            return key
        finally:
            os.remove(staging)

    with open(key_file, 'rb') as f:
        key = serialization.load_pem_private_key(f.read(), password=None)
    if not isinstance(key, Ed25519PrivateKey):
        raise ValueError(f"{key_file} does not hold an Ed25519 private key")
    return key


# Append-only vote audit trail: every entry carries the hash of the previous
# one and an Ed25519 signature over its own canonical JSON.


class AuditLogger:
    def __init__(self, log_dir='logs', signing_key=None):
        self.log_dir = log_dir
        self.log_file = os.path.join(log_dir, 'audit.log')
        self.previous_hash = None
        self._lock = threading.Lock()

        os.makedirs(log_dir, exist_ok=True)

        self.signing_key = signing_key or Ed25519PrivateKey.generate()
        self._load_previous_hash()

    def _load_previous_hash(self):
        if os.path.exists(self.log_file):
            with open(self.log_file, 'r') as f:
                lines = [line for line in f if line.strip()]
            if lines:
                try:
                    self.previous_hash = json.loads(lines[-1]).get('hash')
                except ValueError:
                    logger.warning(f"Last audit entry in {self.log_file} is not valid JSON")
                    self.previous_hash = None

    def public_key_pem(self) -> str:
        pem = self.signing_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo)
        return pem.decode()

    def log_security_event(self, event_type, data, user_id=None):
        """Append one signed, chained entry. Write failures are logged, not raised."""
        with self._lock:
            try:
                log_entry = {
                    "timestamp": datetime.utcnow().isoformat(),
                    "event_type": event_type,
                    "data": data,
                    "user_id": user_id,
                    "previous_hash": self.previous_hash,
                }
                entry_json = json.dumps(log_entry, sort_keys=True)
                entry_hash = hashlib.sha256(entry_json.encode()).hexdigest()
                log_entry['hash'] = entry_hash

                signature = self.signing_key.sign(json.dumps(log_entry, sort_keys=True).encode())
                log_entry['signature'] = base64.b64encode(signature).decode()

                with open(self.log_file, 'a') as f:
                    f.write(json.dumps(log_entry) + "\n")

                self.previous_hash = entry_hash
            except (OSError, TypeError, ValueError) as e:
                logger.error(f"Audit log error for {event_type}: {e}")

    def read_entries(self):
        if not os.path.exists(self.log_file):
            return []
        with open(self.log_file, 'r') as f:
            return [json.loads(line) for line in f if line.strip()]

    def events_for(self, user_id):
        return [e for e in self.read_entries() if e.get('user_id') == user_id]

    def verify_log_integrity(self) -> bool:
        public_key = self.signing_key.public_key()
        previous_hash = None
        try:
            for log_entry in self.read_entries():
                if log_entry.get('previous_hash') != previous_hash:
                    return False
                entry_copy = dict(log_entry)
                signature = base64.b64decode(entry_copy.pop('signature'))
                public_key.verify(signature, json.dumps(entry_copy, sort_keys=True).encode())

                entry_copy.pop('hash')
                expected_hash = hashlib.sha256(json.dumps(entry_copy, sort_keys=True).encode()).hexdigest()
                if expected_hash != log_entry['hash']:
                    return False
                previous_hash = log_entry['hash']
            return True
        except Exception:
            return False
