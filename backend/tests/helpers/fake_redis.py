"""In-memory stand-in for the parts of redis.Redis the selection lock uses."""

import itertools

from redis.exceptions import LockError, LockNotOwnedError


class FakeLock:
    """Token-owned lock with the acquire/release contract of redis.lock.Lock."""

    _tokens = itertools.count(1)

    def __init__(self, client: "FakeRedis", name: str, timeout: float | None = None, blocking: bool = True):
        self.client = client
        self.name = name
        self.timeout = timeout
        self.blocking = blocking
        self.token: str | None = None

    def acquire(self) -> bool:
        token = f"token-{next(self._tokens)}"
        if not self.client.set(self.name, token, nx=True, ex=self.timeout):
            return False
        self.token = token
        return True

    def release(self) -> None:
        if self.token is None:
            raise LockError("Cannot release an unlocked lock")
        token, self.token = self.token, None
        if self.client.keys.get(self.name) != token:
            raise LockNotOwnedError("Cannot release a lock that's no longer owned")
        del self.client.keys[self.name]


class FakeRedis:
    """SET NX plus lock(); expire() simulates a key outliving its ttl."""

    def __init__(self):
        self.keys: dict[str, str] = {}

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.keys:
            return None
        self.keys[key] = value
        return True

    def delete(self, key):
        self.keys.pop(key, None)

    def lock(self, name, timeout=None, blocking=True):
        return FakeLock(self, name, timeout=timeout, blocking=blocking)

    def expire(self, key):
        self.keys.pop(key, None)
