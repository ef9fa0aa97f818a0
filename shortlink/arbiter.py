"""Uniqueness arbiter: claims a code for a new link atomically.

Flow Diagram — claim_generated()
================================
::
    ┌─────────────┐
    │ attempt = 1 │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ generate()  │◄────────────┐
    └──────┬──────┘             │
           ▼                    │
    ┌─────────────┐             │
    │ store.insert│             │
    │ _if_absent  │             │
    └──────┬──────┘             │
    stored?│                    │
    ┌──────┴──────┐             │
    │ YES          │ NO          │
    ▼              ▼             │
┌─────────┐  ┌────────────┐     │
│ return  │  │ attempt <  │ YES │
│ record  │  │ max?       ├─────┘
└─────────┘  └─────┬──────┘
                   │ NO
                   ▼
          GenerationExhausted

Key Behaviours
===============
- The code is reserved and the record created by one conditional write, so
  there is never a window where a code is claimed but the record is missing.
- Custom codes get exactly one attempt; a conflict is the caller's problem.
- Generated codes are retried with fresh candidates up to max_attempts, and
  no lock is held between attempts. A candidate that spells a reserved route
  word counts as a collision.
"""

import dataclasses
import logging
from collections.abc import Callable

from prometheus_client import Counter

from shortlink.errors import CodeAlreadyInUse, GenerationExhausted
from shortlink.shortcode import RESERVED_CODES, generate_short_code
from shortlink.store import LinkRecord, LinkStore

__all__ = ["CodeArbiter", "DEFAULT_MAX_ATTEMPTS"]

DEFAULT_MAX_ATTEMPTS = 10

CODE_COLLISIONS_TOTAL = Counter(
    "shortlink_code_collisions_total",
    "Generated short code candidates rejected because the code was live",
)
GENERATION_EXHAUSTED_TOTAL = Counter(
    "shortlink_generation_exhausted_total",
    "Create requests that ran out of short code generation attempts",
)


class CodeArbiter:
    def __init__(
        self,
        store: LinkStore,
        logger: logging.Logger | logging.LoggerAdapter,
        generator: Callable[[], str] = generate_short_code,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        assert max_attempts > 0, f"max_attempts must be positive, got {max_attempts!r}"
        self._store = store
        self._logger = logger
        self._generate = generator
        self._max_attempts = max_attempts

    async def claim_custom(self, link: LinkRecord) -> LinkRecord:
        stored = await self._store.insert_if_absent(link)
        if stored is None:
            self._logger.info(f"Custom code already in use: {link.code}")
            raise CodeAlreadyInUse(link.code)
        return stored

    async def claim_generated(self, link: LinkRecord) -> LinkRecord:
        for attempt in range(1, self._max_attempts + 1):
            candidate = dataclasses.replace(link, code=self._generate())
            if candidate.code.lower() in RESERVED_CODES:
                # Route words are shadowed by their routes.
                CODE_COLLISIONS_TOTAL.inc()
                self._logger.debug(f"Generated reserved word on attempt {attempt}: {candidate.code}")
                continue
            stored = await self._store.insert_if_absent(candidate)
            if stored is not None:
                if attempt > 1:
                    self._logger.info(f"Allocated {stored.code} after {attempt} attempts")
                return stored
            CODE_COLLISIONS_TOTAL.inc()
            self._logger.debug(f"Code collision on attempt {attempt}: {candidate.code}")

        GENERATION_EXHAUSTED_TOTAL.inc()
        self._logger.error(f"Code generation exhausted after {self._max_attempts} attempts")
        raise GenerationExhausted()
