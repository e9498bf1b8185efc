"""Visit counter core data models.

Plain dataclasses with no framework dependencies. Database documents are
converted to/from these at the storage boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Cache key holding the last known visit count.
VISIT_COUNT_KEY = "visitCount"


@dataclass
class VisitRecord:
    """The single persisted visit counter document."""
    count: int = 0
    id: Any = None
