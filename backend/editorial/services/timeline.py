"""
Append-only audit timeline carried by every manuscript.
"""
from datetime import datetime
from typing import List, Optional

from editorial.models.manuscript import ManuscriptInDB, TimelineEntry


def add_timeline_event(
    manuscript: ManuscriptInDB,
    event: str,
    performed_by=None,
    details: Optional[str] = None
) -> TimelineEntry:
    """Append an entry to the manuscript timeline and bump ``last_updated``."""
    entry = TimelineEntry(
        event=event,
        timestamp=datetime.utcnow(),
        performed_by=performed_by,
        details=details
    )
    manuscript.timeline.append(entry)
    manuscript.last_updated = entry.timestamp
    return entry


def events(manuscript: ManuscriptInDB) -> List[str]:
    return [entry.event for entry in manuscript.timeline]
