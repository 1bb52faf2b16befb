"""Remote transport contract: one dispatch per queued mutation."""
from abc import ABC, abstractmethod

from fieldsync.models.mutation import Mutation


class TransportError(RuntimeError):
    """Raised when the remote system rejects or cannot receive a mutation."""


class RemoteTimeoutError(TransportError):
    """Raised when a dispatch does not finish within the per-item timeout."""


class RemoteTransport(ABC):
    """
    Delivers mutations to the remote system of record.

    A dispatch either returns (the remote accepted the change) or raises
    TransportError. Retries may resend the same mutation, so implementations
    should be idempotent on the remote side where they can.
    """

    @abstractmethod
    async def dispatch(self, mutation: Mutation) -> None:
        ...

    async def close(self) -> None:
        """Release network resources. Default: nothing to release."""
