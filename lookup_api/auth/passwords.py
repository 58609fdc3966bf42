"""
Password hashing.
Psychology: Treat hashing as a black box with a cost factor.
Intention: Keep bcrypt work off the event loop.
"""
import hashlib

from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool


def _prepare(password: str) -> bytes:
    password_bytes = password.encode("utf-8")
    if len(password_bytes) > 72:
        password_bytes = hashlib.sha256(password_bytes).digest()
    return password_bytes


class PasswordHasher:
    def __init__(self, rounds: int = 12):
        self.context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__ident="2b",
            bcrypt__rounds=rounds,
        )

    def hash(self, password: str) -> str:
        return self.context.hash(_prepare(password))

    def verify(self, password: str, hashed_password: str) -> bool:
        try:
            return self.context.verify(_prepare(password), hashed_password)
        except Exception:
            self.context.dummy_verify()
            return False

    async def hash_async(self, password: str) -> str:
        return await run_in_threadpool(self.hash, password)

    async def verify_async(self, password: str, hashed_password: str) -> bool:
        return await run_in_threadpool(self.verify, password, hashed_password)
