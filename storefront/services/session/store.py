"""Client store interface."""
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional


class TokenStore(ABC):
    """Abstract key-value store holding the client's session state."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get a stored value."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a value."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a value if present."""
        pass

    async def clear(self, keys: Iterable[str]) -> None:
        """Remove several values."""
        for key in keys:
            await self.delete(key)


class InMemoryTokenStore(TokenStore):
    """Dict backed store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)
