from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

from app.services.errors import WorkflowError

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")
ResultT = TypeVar("ResultT")


@dataclass(frozen=True)
class ItemOutcome(Generic[ItemT, ResultT]):
    item: ItemT
    result: ResultT | None = None
    error: WorkflowError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchOutcome(Generic[ItemT, ResultT]):
    outcomes: list[ItemOutcome[ItemT, ResultT]] = field(default_factory=list)

    @property
    def successful(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.ok)


async def apply_independently(
    items: Iterable[ItemT],
    operation: Callable[[ItemT], Awaitable[ResultT]],
    *,
    on_failure: Callable[[ItemT, WorkflowError], Awaitable[Any]] | None = None,
) -> BatchOutcome[ItemT, ResultT]:
    """Run ``operation`` over every item in order; a domain failure on one item never stops the rest.

    Only :class:`WorkflowError` is collected per item; anything else propagates.
    Operations wrapped by ``internal_error_boundary`` already turn storage and
    other unexpected faults into ``INTERNAL`` workflow errors, so for them a
    fault on one item is reported on that item and the batch carries on.
    """
    batch: BatchOutcome[ItemT, ResultT] = BatchOutcome()
    for item in items:
        try:
            result = await operation(item)
        except WorkflowError as exc:
            logger.info(
                "Batch item failed",
                extra={"error_kind": exc.kind.value, "error_code": exc.code},
            )
            if on_failure is not None:
                await on_failure(item, exc)
            batch.outcomes.append(ItemOutcome(item=item, error=exc))
            continue
        batch.outcomes.append(ItemOutcome(item=item, result=result))
    return batch
