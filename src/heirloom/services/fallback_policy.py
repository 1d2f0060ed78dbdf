"""
Fallback Policy

Generic three-tier executor shared by generation and voice cloning. Tiers run
in order; a failing tier falls through to the next one and the tertiary tier
is a total default producer. The outcome is returned as a tagged TieredResult
instead of raising.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from heirloom.models.service_enums import FallbackTier, ResultStatus

T = TypeVar('T')

DEFAULT_CONFIDENCE: Dict[FallbackTier, float] = {
    FallbackTier.PRIMARY: 1.0,
    FallbackTier.SECONDARY: 0.6,
    FallbackTier.TERTIARY: 0.3,
}


@dataclass
class TieredResult(Generic[T]):
    """
    Outcome of a tiered execution.

    Attributes:
        value: Value produced by the winning tier (None only when FAILED)
        tier: Tier that produced the value
        status: SUCCESS for the primary tier, DEGRADED otherwise, FAILED if even
            the default producer broke
        confidence: Quality signal for the winning tier
        errors: Failures of the tiers that were skipped over, in order
    """
    value: Optional[T]
    tier: FallbackTier
    status: ResultStatus
    confidence: float
    errors: List[Exception] = field(default_factory=list)

    @property
    def is_degraded(self) -> bool:
        return self.status is not ResultStatus.SUCCESS

    @property
    def last_error(self) -> Optional[Exception]:
        return self.errors[-1] if self.errors else None


async def _call(func: Callable[[], Any]) -> Any:
    result = func()
    if inspect.isawaitable(result):
        result = await result
    return result


class FallbackPolicy:
    """
    Tiered-degradation executor.

    Each tier is a zero-argument callable returning a value or an awaitable.
    Passing ``None`` for the primary or secondary tier skips it, which is how
    disabled features route straight to their defaults.
    """

    def __init__(self, name: str = "default", confidences: Optional[Dict[FallbackTier, float]] = None):
        """
        Initialize the policy.

        Args:
            name: Label used in log messages
            confidences: Per-tier confidence overrides
        """
        self.name = name
        self.confidences = dict(DEFAULT_CONFIDENCE)
        if confidences:
            self.confidences.update(confidences)
        self.logger = logging.getLogger(self.__class__.__name__)

    def with_confidences(self, **overrides: float) -> 'FallbackPolicy':
        """Copy of this policy with confidences overridden by tier name (primary=0.8, ...)."""
        mapping = {FallbackTier(key.lower()): value for key, value in overrides.items()}
        merged = dict(self.confidences)
        merged.update(mapping)
        return FallbackPolicy(self.name, merged)

    async def execute(
        self,
        primary: Optional[Callable[[], Any]],
        tertiary: Callable[[], T],
        secondary: Optional[Callable[[], Any]] = None,
        operation: str = "operation"
    ) -> TieredResult[T]:
        """
        Run the tiers in order and return the first success.

        Args:
            primary: Full-capability attempt, or None to skip
            tertiary: Deterministic default producer
            secondary: Lighter-weight attempt, or None to skip
            operation: Name used in log messages

        Returns:
            TieredResult: Value annotated with the tier that produced it
        """
        errors: List[Exception] = []

        for tier, func in ((FallbackTier.PRIMARY, primary), (FallbackTier.SECONDARY, secondary)):
            if func is None:
                continue
            try:
                value = await _call(func)
            except Exception as e:
                self.logger.warning(f"[{self.name}] {operation}: {tier.value} tier failed: {e}")
                errors.append(e)
                continue

            if tier.is_degraded:
                self.logger.info(f"[{self.name}] {operation}: served by {tier.value} tier")
            return TieredResult(
                value=value,
                tier=tier,
                status=ResultStatus.DEGRADED if tier.is_degraded else ResultStatus.SUCCESS,
                confidence=self.confidences[tier],
                errors=errors
            )

        try:
            value = await _call(tertiary)
        except Exception as e:
            self.logger.exception(f"[{self.name}] {operation}: default producer failed: {e}")
            errors.append(e)
            return TieredResult(
                value=None,
                tier=FallbackTier.TERTIARY,
                status=ResultStatus.FAILED,
                confidence=0.0,
                errors=errors
            )

        self.logger.info(f"[{self.name}] {operation}: served by tertiary tier")
        return TieredResult(
            value=value,
            tier=FallbackTier.TERTIARY,
            status=ResultStatus.DEGRADED,
            confidence=self.confidences[FallbackTier.TERTIARY],
            errors=errors
        )
