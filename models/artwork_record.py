from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass
class ArtworkRecord:
    """In-memory representation of a row in the ARTWORK table.

    Attributes:
        id: Primary key (uuid hex string).
        title: Artwork title shown to visitors.
        slug: Optional short-name used in visitor URLs.
        description: Optional free-text description.
        facts: Optional curator-supplied facts.
        image_url: Optional absolute URL of the artwork image.
        created_at: Unix timestamp (seconds) when the row was inserted.
    """

    id: str
    title: str
    slug: Optional[str] = None
    description: Optional[str] = None
    facts: Optional[str] = None
    image_url: Optional[str] = None
    created_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
