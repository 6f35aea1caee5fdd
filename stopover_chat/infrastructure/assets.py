from __future__ import annotations

from stopover_chat.application.ports.assets import AssetPort
from stopover_chat.infrastructure.knowledge.catalog_data import CATEGORIES, HOTELS, TOURS

LOCAL_ASSET_ROOT = "/assets/images"

BRAND_ASSETS = ("logos/airline-logo.png", "logos/loyalty-logo.png")


def catalog_asset_keys() -> list[str]:
    keys = list(BRAND_ASSETS)
    keys.extend(c.image for c in CATEGORIES)
    keys.extend(h.image for h in HOTELS)
    keys.extend(t.image for t in TOURS)
    return keys


class AssetResolver(AssetPort):
    """Resolves asset keys ("hotels/millenium_hotel.webp") to URLs.

    With a CDN base URL assets are served from the CDN; otherwise from the
    local static path.
    """

    def __init__(self, cdn_base_url: str = "", keys: list[str] | None = None) -> None:
        self._cdn_base_url = cdn_base_url.rstrip("/")
        self._keys = list(keys) if keys is not None else catalog_asset_keys()

    @property
    def uses_cdn(self) -> bool:
        return bool(self._cdn_base_url)

    def local_url(self, key: str) -> str:
        return f"{LOCAL_ASSET_ROOT}/{key.split('/')[-1]}"

    def url_for(self, key: str) -> str:
        if self.uses_cdn:
            return f"{self._cdn_base_url}/{key}"
        return self.local_url(key)

    def all_urls(self) -> dict[str, dict[str, str]]:
        """Asset URLs grouped by folder (logos, stopovers, hotels, tours)."""
        grouped: dict[str, dict[str, str]] = {}
        for key in self._keys:
            folder, _, name = key.partition("/")
            grouped.setdefault(folder, {})[name] = self.url_for(key)
        return grouped

    def local_fallbacks(self) -> dict[str, dict[str, str]]:
        grouped: dict[str, dict[str, str]] = {}
        for key in self._keys:
            folder, _, name = key.partition("/")
            grouped.setdefault(folder, {})[name] = self.local_url(key)
        return grouped
