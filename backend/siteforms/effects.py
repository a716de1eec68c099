from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class SubmissionError(Exception):
    """Raised by a submission effect that could not deliver the payload."""

    retryable = False


class TransientSubmissionError(SubmissionError):
    retryable = True


class PermanentSubmissionError(SubmissionError):
    retryable = False


SubmissionEffect = Callable[[BaseModel], Awaitable[None]]


class SimulatedSubmission:
    """Stands in for the booking/contact backend: logs the payload, then waits."""

    def __init__(self, delay: float = 1.0):
        self.delay = delay

    async def __call__(self, payload: BaseModel) -> None:
        await asyncio.sleep(self.delay)
        logger.info("%s received: %s", type(payload).__name__, payload.model_dump(mode="json"))
