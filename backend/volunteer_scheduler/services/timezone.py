from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import (
    AmbiguousLocalTimeError,
    NonexistentLocalTimeError,
    TimeZoneResolutionError,
)

Clock = Callable[[], datetime]


def _system_clock() -> datetime:
    return datetime.now(timezone.utc)


class TimeZoneProjector:
    """
    Converts between wall-clock times in one organizational zone and UTC instants.

    The offset is looked up for each date on its own, so 09:00 in January and
    09:00 in July land on different UTC hours in a DST zone. Wall-clock times
    that fall in a DST gap or fold are rejected instead of guessed.
    """

    def __init__(self, zone_id: str, clock: Optional[Clock] = None):
        try:
            self.zone = ZoneInfo(zone_id)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise TimeZoneResolutionError(f"Unknown time zone: {zone_id!r}") from exc
        self.zone_id = zone_id
        self._clock = clock or _system_clock

    def to_instant(self, local_date: date, local_time: time) -> datetime:
        early = datetime.combine(local_date, local_time).replace(tzinfo=self.zone, fold=0)
        late = early.replace(fold=1)
        early_utc = early.astimezone(timezone.utc)
        late_utc = late.astimezone(timezone.utc)

        if early_utc == late_utc:
            return early_utc

        # Offsets differ between folds: either the clock skipped this time
        # (no UTC instant maps back to it) or it happened twice.
        back = early_utc.astimezone(self.zone)
        if (back.date(), back.time()) != (local_date, local_time):
            raise NonexistentLocalTimeError(
                f"{local_date.isoformat()} {local_time:%H:%M} does not exist in {self.zone_id}",
                local_date=local_date,
            )
        raise AmbiguousLocalTimeError(
            f"{local_date.isoformat()} {local_time:%H:%M} occurs twice in {self.zone_id}",
            local_date=local_date,
        )

    def to_local(self, instant: datetime) -> Tuple[date, time]:
        if instant.tzinfo is None:
            raise ValueError("instant must be timezone-aware")
        local = instant.astimezone(self.zone)
        return local.date(), local.time().replace(tzinfo=None)

    def now(self) -> datetime:
        return self._clock().astimezone(timezone.utc)

    def today(self) -> date:
        return self.now().astimezone(self.zone).date()
