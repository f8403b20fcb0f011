import os
import random
import uuid
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import anyio
from glide import ConditionalChange, ExpirySet, ExpiryType, Script

from .exceptions import StateLockError

if TYPE_CHECKING:  # pragma: no cover
    from types import TracebackType

    from glide import TGlideClient


LUA_RELEASE_SCRIPT = Script(
    """
    if redis.call("get",KEYS[1]) == ARGV[1] then
        return redis.call("del",KEYS[1])
    else
        return 0
    end
""".strip()
)


class PollingLock(ABC):
    """
    An exclusive state lock acquired by retrying a single atomic claim, with jittered
    backoff, until it succeeds or `blocking_timeout` elapses. Only the holder that
    made the claim may release it.
    """

    def __init__(self, name: str, blocking_timeout: float) -> None:
        self.name = name
        self.blocking_timeout = blocking_timeout
        self.token = str(uuid.uuid4())
        self._held = False

    @abstractmethod
    async def claim(self) -> bool:
        """Atomically take the lock if nobody holds it."""
        raise NotImplementedError()

    @abstractmethod
    async def release(self) -> None:
        """Give the lock back if it is still held under this token."""
        raise NotImplementedError()

    async def __aenter__(self) -> None:
        if self._held:
            return

        deadline = anyio.current_time() + self.blocking_timeout

        while not await self.claim():
            if anyio.current_time() > deadline:
                raise StateLockError(self.name, self.blocking_timeout)

            await anyio.sleep(random.uniform(0.1, 0.4))

        self._held = True

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: "TracebackType | None",
    ) -> None:
        if self._held:
            await self.release()
            self._held = False


class ValkeyLock(PollingLock):
    """A lock key set only if absent, expiring on its own if the holder dies."""

    def __init__(
        self,
        client: "TGlideClient",
        name: str,
        blocking_timeout: float,
        expiry: int = 600,
    ) -> None:
        super().__init__(name, blocking_timeout)
        self.client = client
        self.expiry = expiry

    async def claim(self) -> bool:
        return bool(
            await self.client.set(
                self.name,
                self.token,
                conditional_set=ConditionalChange.ONLY_IF_DOES_NOT_EXIST,
                expiry=ExpirySet(ExpiryType.SEC, self.expiry),
            )
        )

    async def release(self) -> None:
        await self.client.invoke_script(
            LUA_RELEASE_SCRIPT, keys=[self.name], args=[self.token]
        )


class FileLock(PollingLock):
    """A lock file created exclusively next to a state file."""

    def __init__(self, path: "os.PathLike[str] | str", blocking_timeout: float):
        super().__init__(str(path), blocking_timeout)
        self.path = anyio.Path(path)

    async def claim(self) -> bool:
        try:
            await self.path.touch(exist_ok=False)
        except FileExistsError:
            return False

        await self.path.write_text(self.token)
        return True

    async def release(self) -> None:
        if await self.path.exists() and await self.path.read_text() == self.token:
            await self.path.unlink()
