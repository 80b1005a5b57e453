"""Energy metric repository."""

from datetime import datetime, timezone
from typing import List, Optional

from focuscore.domain.models.metrics import EnergyMetric, EnergyMetricCreate, TimeRange
from focuscore.persistence.store import ENERGY_METRICS, Query, RecordStore, Row


class EnergyMetricRepository:
    """Append-only access to energy_metrics rows."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def create(self, user_id: str, payload: EnergyMetricCreate) -> EnergyMetric:
        row = await self.store.insert(
            ENERGY_METRICS,
            {
                "user_id": user_id,
                "physical_energy": payload.physical_energy,
                "mental_energy": payload.mental_energy,
                "emotional_energy": payload.emotional_energy,
                "sleep_quality": payload.sleep_quality,
                "notes": payload.notes,
                "recorded_at": payload.recorded_at or datetime.now(timezone.utc),
            },
        )
        return self._row_to_metric(row)

    async def list_for_user(
        self, user_id: str, time_range: Optional[TimeRange] = None
    ) -> List[EnergyMetric]:
        rows = await self.store.select(
            Query(
                relation=ENERGY_METRICS,
                equals={"user_id": user_id},
                range_column="recorded_at" if time_range else None,
                range_start=time_range.start if time_range else None,
                range_end=time_range.end if time_range else None,
                order_by="recorded_at",
            )
        )
        return [self._row_to_metric(row) for row in rows]

    def _row_to_metric(self, row: Row) -> EnergyMetric:
        return EnergyMetric(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            physical_energy=row["physical_energy"],
            mental_energy=row["mental_energy"],
            emotional_energy=row["emotional_energy"],
            sleep_quality=row.get("sleep_quality"),
            notes=row.get("notes"),
            recorded_at=row["recorded_at"],
            created_at=row.get("created_at"),
        )
