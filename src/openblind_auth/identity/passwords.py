"""bcrypt password hashing.

bcrypt is deliberately slow, so both calls run in a worker thread and the
event loop keeps serving other requests while a hash is computed.
"""

import asyncio

import bcrypt


def _hash(password: str, rounds: int) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def _check(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


async def hash_password(password: str, rounds: int = 12) -> str:
    return await asyncio.to_thread(_hash, password, rounds)


async def verify_password(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(_check, password, password_hash)
