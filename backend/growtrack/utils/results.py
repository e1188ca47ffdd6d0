"""Per-item outcome aggregation for partial-failure bulk operations.

Bulk operations (tag import, quick-entry plant creation) never abort on
the first bad item. Each item is recorded as a success or as the domain
error it raised, and the caller gets the whole report back.
"""

from dataclasses import dataclass, field

from growtrack.middleware.exceptions import GrowTrackException


@dataclass
class ItemOutcome:
    item: str
    ok: bool
    entity_id: str | None = None
    error_code: str | None = None
    message: str | None = None


@dataclass
class BulkResult:
    outcomes: list[ItemOutcome] = field(default_factory=list)

    def succeed(self, item: str, entity_id: str | None = None) -> None:
        self.outcomes.append(ItemOutcome(item=item, ok=True, entity_id=entity_id))

    def fail(self, item: str, exc: GrowTrackException) -> None:
        self.outcomes.append(ItemOutcome(
            item=item, ok=False, error_code=exc.error_code, message=exc.message,
        ))

    @property
    def succeeded(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if not o.ok]
