from datetime import date

from pydantic import BaseModel, Field

from trainload.models.sport import SportMode


class DailyLoad(BaseModel):
    """Training load of one day, aggregated over an athlete's activities."""
    date: date
    tss: float = 0.0
    sport: SportMode | None = Field(None, description="None for combined-sport load")
    activity_count: int = 0
    unscored_count: int = Field(default=0, description="Activities on this day without a TSS")

    @property
    def is_rest_day(self) -> bool:
        return self.activity_count == 0


class TrendPoint(BaseModel):
    """Fitness (CTL), fatigue (ATL) and form (TSB) for one day."""
    date: date
    tss: float
    ctl: float
    atl: float
    tsb: float = Field(..., description="CTL - ATL of the previous day")
