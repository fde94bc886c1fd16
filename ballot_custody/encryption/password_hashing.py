# ballot_custody/encryption/password_hashing.py

import re
from argon2 import PasswordHasher
from argon2.exceptions import HashingError, InvalidHashError, VerificationError

# Argon2id hashes for the optional voter login password


class PasswordHashingService:
    MIN_LENGTH = 8

    def __init__(self, time_cost=3, memory_cost=65536, parallelism=4):
        self.ph = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=32,
            salt_len=16,
        )

    def hash_password(self, password: str) -> str:
        if not self.is_acceptable_password(password):
            raise ValueError("Password must be at least 8 characters and mix letters and digits")
        try:
            return self.ph.hash(password)
        except HashingError as e:
            raise ValueError(f"Password hashing failed: {str(e)}")

    def verify_password(self, password: str, hash_value: str) -> bool:
        if not isinstance(password, str) or not password or not hash_value:
            return False
        try:
            return self.ph.verify(hash_value, password)
        except (VerificationError, InvalidHashError):
            return False

    def needs_rehash(self, hash_value: str) -> bool:
        return self.ph.check_needs_rehash(hash_value)

    def is_acceptable_password(self, password) -> bool:
        if not isinstance(password, str) or len(password) < self.MIN_LENGTH:
            return False
        return bool(re.search(r'[A-Za-z]', password)) and bool(re.search(r'\d', password))
