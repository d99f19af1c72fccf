"""Retrying RPC calls with exponential backoff."""

from __future__ import annotations

import itertools
import logging
import random
import time
from enum import Enum
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 10
_MULTIPLIER = 1.5
_RANDOMIZATION_FACTOR = 0.5
_MAX_INTERVAL = 60.0
_MAX_ELAPSED = 15 * 60.0


class ErrorCode(str, Enum):
    """RPC error codes."""

    CANCELED = "canceled"
    UNKNOWN = "unknown"
    INVALID_ARGUMENT = "invalid_argument"
    MALFORMED = "malformed"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    NOT_FOUND = "not_found"
    BAD_ROUTE = "bad_route"
    ALREADY_EXISTS = "already_exists"
    PERMISSION_DENIED = "permission_denied"
    UNAUTHENTICATED = "unauthenticated"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    FAILED_PRECONDITION = "failed_precondition"
    ABORTED = "aborted"
    OUT_OF_RANGE = "out_of_range"
    UNIMPLEMENTED = "unimplemented"
    INTERNAL = "internal"
    UNAVAILABLE = "unavailable"
    DATA_LOSS = "dataloss"


class RpcError(Exception):
    """An error returned by an RPC endpoint, carrying its code."""

    def __init__(self, code: ErrorCode, msg: str) -> None:
        super().__init__(msg)
        self.code = code
        self.msg = msg

    def __str__(self) -> str:
        return f"twirp error {self.code.value}: {self.msg}"


def _randomize(interval: float) -> float:
    delta = _RANDOMIZATION_FACTOR * interval
    return random.uniform(interval - delta, interval + delta)


def retry(
    func: Callable[[], T],
    max_retries: int = MAX_RETRIES,
    initial_interval: float = 0.5,
) -> T:
    """Call ``func`` until it succeeds, retrying only "unavailable" RPC errors.

    Any other exception is raised at once. After ``max_retries`` retries the
    last error is raised.
    """
    interval = initial_interval
    start = time.monotonic()
    for attempt in itertools.count():
        try:
            return func()
        except RpcError as err:
            if err.code is not ErrorCode.UNAVAILABLE or attempt >= max_retries:
                raise
            delay = _randomize(interval)
            if time.monotonic() - start + delay > _MAX_ELAPSED:
                raise
            logger.warning("%s", err)
            logger.info("Retrying HTTP request...")
            interval = min(interval * _MULTIPLIER, _MAX_INTERVAL)
            time.sleep(delay)
    raise AssertionError("unreachable")