from enum import Enum

from pydantic import BaseModel, Field, computed_field


class OutcomeStatus(str, Enum):
    """Result of one backfill unit."""
    COMPUTED = "computed"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ActivityOutcome(BaseModel):
    activity_id: str
    status: OutcomeStatus
    missing_inputs: list[str] = Field(default_factory=list)
    error: str | None = None


class BackfillReport(BaseModel):
    """Per-activity success/failure report of a backfill run."""
    athlete_id: str
    outcomes: list[ActivityOutcome] = Field(default_factory=list)
    trend_refreshed: bool = False

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @computed_field
    @property
    def computed(self) -> int:
        return self._count(OutcomeStatus.COMPUTED)

    @computed_field
    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @computed_field
    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @computed_field
    @property
    def cancelled(self) -> int:
        return self._count(OutcomeStatus.CANCELLED)

    @computed_field
    @property
    def missing_input_count(self) -> int:
        """Activities whose fields were partially absent for lack of input."""
        return sum(1 for outcome in self.outcomes if outcome.missing_inputs)
