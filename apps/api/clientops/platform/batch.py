from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from clientops.core.errors import LifecycleError, PartialBatchFailure
from clientops.metrics import observe_batch


logger = logging.getLogger("clientops.batch")


@dataclass(slots=True)
class BatchItemError:
    item_id: str
    code: str
    message: str


@dataclass(slots=True)
class BatchResult:
    action: str
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: list[BatchItemError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.failed

    def reject(self, item_id: str, code: str, message: str) -> None:
        """Record an item as failed without running the operation for it."""
        self.failed.append(item_id)
        self.errors.append(BatchItemError(item_id=item_id, code=code, message=message))

    def raise_for_failures(self) -> None:
        if self.failed:
            raise PartialBatchFailure(self.action, self)


def run_batch(action: str, item_ids: Iterable[str], operation: Callable[[str], object]) -> BatchResult:
    """Run ``operation`` once per item and report each outcome.

    A failing item never aborts the remaining items and the failure is
    recorded instead of raised. Duplicate ids are processed once.
    """
    result = BatchResult(action=action)
    seen: set[str] = set()
    for item_id in item_ids:
        if item_id in seen:
            continue
        seen.add(item_id)
        try:
            operation(item_id)
        except LifecycleError as exc:
            result.failed.append(item_id)
            result.errors.append(BatchItemError(item_id=item_id, code=exc.code, message=str(exc)))
            logger.warning(
                "batch.item_failed",
                extra={"action": action, "entity_id": item_id, "error": str(exc)},
            )
        else:
            result.succeeded.append(item_id)

    observe_batch(action, succeeded=len(result.succeeded), failed=len(result.failed))
    return result


class SelectionSet:
    """Ids selected for a bulk action within the currently filtered view."""

    def __init__(self) -> None:
        self._selected: set[str] = set()
        self._filter_key: tuple | None = None

    @property
    def selected(self) -> list[str]:
        return sorted(self._selected)

    def __len__(self) -> int:
        return len(self._selected)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._selected

    def toggle(self, item_id: str) -> None:
        if item_id in self._selected:
            self._selected.discard(item_id)
        else:
            self._selected.add(item_id)

    def select_all(self, visible_ids: Iterable[str]) -> None:
        self._selected = set(visible_ids)

    def select(self, item_ids: Iterable[str]) -> None:
        self._selected.update(item_ids)

    def clear(self) -> None:
        self._selected.clear()

    def restrict_to(self, visible_ids: Iterable[str]) -> list[str]:
        """Keep only ids present in the visible view; return the ones dropped."""
        visible = set(visible_ids)
        dropped = sorted(self._selected - visible)
        self._selected &= visible
        return dropped

    def apply_filter(self, filter_key: tuple) -> bool:
        """Record the active filter; any change drops the current selection."""
        if filter_key == self._filter_key:
            return False
        self._filter_key = filter_key
        self._selected.clear()
        return True
