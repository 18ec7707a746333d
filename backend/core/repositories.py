from typing import Any, Dict, List, Optional, Protocol, Sequence


class DocumentStore(Protocol):
    """Whole-collection persistence: each collection is a list of JSON documents."""

    def initialize(self, seeds: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> None:
        ...

    def read(self, collection: str) -> List[Dict[str, Any]]:
        ...

    def write(self, collection: str, records: Sequence[Dict[str, Any]]) -> None:
        ...
