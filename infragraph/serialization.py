from abc import ABC, abstractmethod
from hashlib import blake2b
from hmac import compare_digest
from threading import local as thread_context
from typing import TYPE_CHECKING, final

from pydantic import ValidationError
from zstandard import ZstdCompressor, ZstdDecompressor, ZstdError

from .exceptions import StateError, TamperedStateError
from .state import State

if TYPE_CHECKING:  # pragma: no cover
    from typing import ClassVar


class Serializer(ABC):
    @abstractmethod
    def serialize(self, state: State) -> bytes:
        """Serialize state to a bytestream."""
        raise NotImplementedError()

    @abstractmethod
    def deserialize(self, data: bytes) -> State:
        """Deserialize state from a bytestream."""
        raise NotImplementedError()

    @abstractmethod
    def compress(self, data: bytes) -> bytes:
        """Compress a bytestream for storage."""
        raise NotImplementedError()

    @abstractmethod
    def decompress(self, data: bytes) -> bytes:
        """Decompress a bytestream from storage."""
        raise NotImplementedError()

    @final
    def dump(self, state: State) -> bytes:
        """Serialize and compress state into a bytestream for storage."""
        return self.compress(self.serialize(state))

    @final
    def load(self, data: bytes) -> State:
        """Decompress and deserialize state from a bytestream from storage."""
        try:
            return self.deserialize(self.decompress(data))
        except ValidationError as e:
            raise StateError(f"Stored state is not valid: {e}") from e


class SignedZstdSerializer(Serializer):
    # Zstd is not thread safe so we should ensure a unique instance per thread
    _thread_context: "ClassVar[thread_context]" = thread_context()

    def __init__(self, secret: str) -> None:
        super().__init__()
        self.secret_key: bytes = secret.encode()

    def serialize(self, state: State) -> bytes:
        return state.model_dump_json().encode()

    def deserialize(self, data: bytes) -> State:
        return State.model_validate_json(data)

    @property
    def compressor(self) -> "ZstdCompressor":
        if not hasattr(self._thread_context, "compressor"):
            self._thread_context.compressor = ZstdCompressor()

        return self._thread_context.compressor

    @property
    def decompressor(self) -> "ZstdDecompressor":
        if not hasattr(self._thread_context, "decompressor"):
            self._thread_context.decompressor = ZstdDecompressor()

        return self._thread_context.decompressor

    def _signature(self, data: bytes) -> bytes:
        signer = blake2b(digest_size=16, key=self.secret_key, usedforsecurity=True)
        signer.update(data)
        return signer.hexdigest().encode()

    def compress(self, data: bytes) -> bytes:
        compressed = self.compressor.compress(data)
        return self._signature(compressed) + b"|" + compressed

    def decompress(self, compressed: bytes) -> bytes:
        try:
            signature, compressed = compressed.split(b"|", 1)
        except ValueError as e:
            raise TamperedStateError() from e

        if not compare_digest(self._signature(compressed), signature):
            raise TamperedStateError()

        try:
            return self.decompressor.decompress(compressed)
        except ZstdError as e:
            raise TamperedStateError() from e
