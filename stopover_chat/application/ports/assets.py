from __future__ import annotations

from abc import ABC, abstractmethod


class AssetPort(ABC):
    @abstractmethod
    def url_for(self, key: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def all_urls(self) -> dict[str, dict[str, str]]:
        raise NotImplementedError

    @property
    @abstractmethod
    def uses_cdn(self) -> bool:
        raise NotImplementedError
