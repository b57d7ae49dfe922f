"""
Debug tracing for the pure approval engines.

``@traced_engine`` logs one ``APPROVAL_ENGINE_TRACE`` record per call with
the engine's name and version, how long the call took and a short digest
of selected arguments, however they were passed. Two calls with equal
inputs produce the same digest, which lets a resolver decision in the
logs be matched to the configuration and amount that produced it.
The wrapped function's result and exceptions pass through untouched.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import json
import time
from collections.abc import Callable, Mapping
from typing import Any

from approval_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

TRACE_EVENT = "APPROVAL_ENGINE_TRACE"


def input_digest(field_names: tuple[str, ...], call_kwargs: Mapping[str, Any]) -> str:
    """First 16 hex chars of a SHA-256 over the named kwargs; absent ones count as null."""
    selected = {name: call_kwargs.get(name) for name in field_names}
    blob = json.dumps(selected, sort_keys=True, default=_plain)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()[:16]


def _plain(value: Any) -> Any:
    enum_value = getattr(value, "value", None)
    if enum_value is not None and not callable(enum_value):
        return enum_value
    if isinstance(value, (set, frozenset)):
        return sorted(str(item) for item in value)
    return str(value)


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            digest = ""
            if fingerprint_fields:
                # Positional and keyword calls must digest the same.
                bound = signature.bind_partial(*args, **kwargs)
                digest = input_digest(fingerprint_fields, bound.arguments)
            started = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                logger.debug(TRACE_EVENT, extra={
                    "trace_type": TRACE_EVENT,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": digest,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                    "function": func.__qualname__,
                })

        return wrapper

    return decorator
