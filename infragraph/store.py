from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import anyio
from anyio.lowlevel import RunVar
from anyio_atexit import run_finally
from glide import (
    GlideClient,
    GlideClientConfiguration,
    GlideClusterClient,
    GlideClusterClientConfiguration,
    NodeAddress,
)
from pydantic import ValidationError

from .exceptions import StateError
from .lock import FileLock, ValkeyLock
from .serialization import SignedZstdSerializer
from .state import State

if TYPE_CHECKING:  # pragma: no cover
    import os
    from collections.abc import AsyncIterator
    from contextlib import AbstractAsyncContextManager

    from glide import TGlideClient

    from .config import Settings
    from .serialization import Serializer


class StateStore(ABC):
    """Where last-applied state lives between runs."""

    @abstractmethod
    async def load(self) -> State:
        raise NotImplementedError()

    @abstractmethod
    async def save(self, state: State) -> None:
        raise NotImplementedError()

    @abstractmethod
    def lock(self) -> "AbstractAsyncContextManager[None]":
        """Hold exclusive access to the state for the duration of a run."""
        raise NotImplementedError()


class MemoryStateStore(StateStore):
    def __init__(self, state: State | None = None) -> None:
        self.state = state or State()
        self._lock = anyio.Lock()

    async def load(self) -> State:
        return self.state.model_copy(deep=True)

    async def save(self, state: State) -> None:
        self.state = state.model_copy(deep=True)

    @asynccontextmanager
    async def lock(self) -> "AsyncIterator[None]":
        async with self._lock:
            yield


class FileStateStore(StateStore):
    """State kept as a JSON document on the local filesystem."""

    def __init__(
        self, path: "os.PathLike[str] | str", lock_timeout: float = 5
    ) -> None:
        self.path = anyio.Path(path)
        self.lock_timeout = lock_timeout

    async def load(self) -> State:
        if not await self.path.exists():
            return State()

        try:
            return State.model_validate_json(await self.path.read_bytes())
        except ValidationError as e:
            raise StateError(f"State file '{self.path}' is not valid: {e}") from e

    async def save(self, state: State) -> None:
        await self.path.parent.mkdir(parents=True, exist_ok=True)

        # write then rename so readers never observe a partial document
        staging = self.path.with_name(f".{self.path.name}.tmp")
        await staging.write_text(state.model_dump_json(indent=2))
        await staging.replace(self.path)

    @asynccontextmanager
    async def lock(self) -> "AsyncIterator[None]":
        async with FileLock(
            self.path.with_name(f"{self.path.name}.lock"),
            blocking_timeout=self.lock_timeout,
        ):
            yield


class ValkeyStateStore(StateStore):
    """State kept as a signed, compressed blob under a single Valkey key."""

    def __init__(
        self,
        glide_config: "GlideClientConfiguration | GlideClusterClientConfiguration",
        key: str,
        serializer: "Serializer",
        lock_timeout: float = 5,
    ) -> None:
        self.key = key
        self.serializer = serializer
        self.lock_timeout = lock_timeout

        self._glide_config = glide_config
        self._client_var: RunVar["TGlideClient"] = RunVar("_client_var")

    async def new_glide_client(self) -> "TGlideClient":
        return await (
            GlideClusterClient
            if isinstance(self._glide_config, GlideClusterClientConfiguration)
            else GlideClient
        ).create(self._glide_config)

    async def client(self) -> "TGlideClient":
        try:
            return self._client_var.get()
        except LookupError:
            client = await self.new_glide_client()
            run_finally(client.close)

            self._client_var.set(client)
            return client

    async def load(self) -> State:
        data: bytes | None = await (await self.client()).get(self.key)
        if data is None:
            return State()

        return self.serializer.load(data)

    async def save(self, state: State) -> None:
        await (await self.client()).set(self.key, self.serializer.dump(state))

    @asynccontextmanager
    async def lock(self) -> "AsyncIterator[None]":
        async with ValkeyLock(
            await self.client(),
            f"{self.key}:lock",
            blocking_timeout=self.lock_timeout,
        ):
            yield


def state_store_from_url(url: str, settings: "Settings") -> StateStore:
    """
    Build a state store from a location: ``valkey://host:port/key`` for Valkey,
    anything else is a local file path.
    """
    parts = urlsplit(url)

    if parts.scheme in ("valkey", "valkeys"):
        key = parts.path.lstrip("/") or "infragraph:state"
        glide_config = GlideClientConfiguration(
            [NodeAddress(parts.hostname or "localhost", parts.port or 6379)],
            use_tls=parts.scheme == "valkeys",
        )
        return ValkeyStateStore(
            glide_config,
            key,
            SignedZstdSerializer(settings.state_secret),
            lock_timeout=settings.state_lock_timeout,
        )

    return FileStateStore(url, lock_timeout=settings.state_lock_timeout)
