"""Typed per-item outcomes of the best-effort pipeline loops."""

from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class ItemResult(Generic[T]):
    """Outcome of one item: either ``value`` or ``error`` is set."""

    item: str
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, item: str, value: T) -> "ItemResult[T]":
        return cls(item=item, value=value)

    @classmethod
    def failure(cls, item: str, error: BaseException) -> "ItemResult[T]":
        return cls(item=item, error=error)


@dataclass
class BatchResult(Generic[T]):
    """Ordered item outcomes of one loop.

    A run can finish with fewer outputs than inputs; ``completeness`` is the
    share of items that succeeded.
    """

    results: List[ItemResult[T]] = field(default_factory=lambda: [])

    def add(self, result: ItemResult[T]) -> None:
        self.results.append(result)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def ok_count(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def error_count(self) -> int:
        return self.total - self.ok_count

    @property
    def completeness(self) -> float:
        return self.ok_count / self.total if self.results else 1.0

    @property
    def values(self) -> List[T]:
        return [result.value for result in self.results if result.ok and result.value is not None]

    @property
    def errors(self) -> List[ItemResult[T]]:
        return [result for result in self.results if not result.ok]


__all__ = ["ItemResult", "BatchResult"]
