"""Storage protocol: local key-value persistence."""
from typing import Protocol


class KeyValueStorage(Protocol):
    """String-to-string store with synchronous writes."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...
