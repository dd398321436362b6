"""
Tagged result values returned across component boundaries.

Routing platform adapters, the leg resolver and the correction applier never
raise for remote failures. They return either a Success carrying the value or
a Failure carrying the failure kind, a readable error and the raw remote
payload. Both expose `.ok` as the discriminator:

    result = await client.get_call_detail(leg_id)
    if not result.ok:
        logger.warning(f"Lookup failed: {result.error}")
        return result
    leg = result.value
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

from payout_recon.models.enums import FailureKind


T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    error: str
    raw: Optional[Any] = None

    @property
    def ok(self) -> bool:
        return False

    def with_kind(self, kind: FailureKind, prefix: Optional[str] = None) -> "Failure":
        """Re-tag a failure from a lower layer, optionally prefixing the message."""
        error = f"{prefix}: {self.error}" if prefix else self.error
        return Failure(kind=kind, error=error, raw=self.raw)


Result = Union[Success[T], Failure]
