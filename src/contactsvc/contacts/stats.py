"""
Read-side contact counts.
"""

from contactsvc.contacts.models import ContactStatus
from contactsvc.contacts.repository import ContactRepositoryProtocol
from contactsvc.contacts.schemas import ContactStats, SegmentCount


class ContactStatsAggregator:
    """Totals by status and per-segment membership counts."""

    def __init__(self, repository: ContactRepositoryProtocol) -> None:
        self._repository = repository

    async def aggregate(self) -> ContactStats:
        by_status = await self._repository.count_by_status()
        by_segment = await self._repository.count_by_segment()

        return ContactStats(
            total=sum(by_status.values()),
            active=by_status.get(ContactStatus.ACTIVE, 0),
            inactive=by_status.get(ContactStatus.INACTIVE, 0),
            pending=by_status.get(ContactStatus.PENDING, 0),
            by_segment=[
                SegmentCount(segment_id=segment_id, name=name, count=count)
                for segment_id, name, count in by_segment
            ],
        )
