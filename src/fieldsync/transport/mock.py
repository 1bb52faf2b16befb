"""
Simulated transport for development without a backend.

Sleeps for a fixed latency and fails a configurable fraction of dispatches.
Pass a seeded random.Random for reproducible failure sequences.
"""
import asyncio
import logging
import random
from typing import List, Optional

from fieldsync.models.mutation import Delete, Mutation
from fieldsync.transport.base import RemoteTransport, TransportError

logger = logging.getLogger(__name__)


class MockTransport(RemoteTransport):
    def __init__(
        self,
        latency_ms: int = 100,
        failure_rate: float = 0.1,
        rng: Optional[random.Random] = None,
    ):
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0 and 1")
        self.latency_ms = latency_ms
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()
        self.dispatched: List[Mutation] = []

    async def dispatch(self, mutation: Mutation) -> None:
        field_keys = [] if isinstance(mutation, Delete) else sorted(mutation.fields)
        logger.debug(
            "MOCK dispatch %s %s:%s fields=%s",
            mutation.operation.value,
            mutation.table_name,
            mutation.record_id,
            field_keys,
        )
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000)

        if self._rng.random() < self.failure_rate:
            raise TransportError(
                f"MOCK: random remote failure ({self.failure_rate:.0%} chance)"
            )
        self.dispatched.append(mutation)
