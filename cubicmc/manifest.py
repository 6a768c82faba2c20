"""The official version manifest, listing the available versions with the URL and SHA-1
of their descriptor.
"""

from pathlib import Path
import json

from .http import get_json, HttpError

from typing import Optional, Tuple


VERSION_MANIFEST_URL = "https://piston-meta.mojang.com/mc/game/version_manifest_v2.json"


class VersionManifest:
    """The version manifest, with an optional cache file used when offline or when the
    remote manifest has not been modified.
    """

    def __init__(self, cache_file: Optional[Path] = None, url: str = VERSION_MANIFEST_URL) -> None:
        self.data: Optional[dict] = None
        self.cache_file = cache_file
        self.url = url

    def _ensure_data(self) -> dict:
        """Internal method that ensure that the manifest data is up-to-date.

        :return: The full data of the manifest.
        :raises HttpError: Underlying HTTP error if manifest could not be requested.
        """

        if self.data is None:

            headers = {}
            cache_data = None

            # If a cache file should be used, try opening it and read the last modified
            # time that will be used for requesting the manifest, only if needed.
            if self.cache_file is not None:
                try:
                    with self.cache_file.open("rt") as cache_fp:
                        cache_data = json.load(cache_fp)
                    if "last_modified" in cache_data:
                        headers["If-Modified-Since"] = cache_data["last_modified"]
                except (OSError, json.JSONDecodeError):
                    cache_data = None

            try:

                res = get_json(self.url, headers=headers)
                data = res.json()
                if not isinstance(data, dict) or not isinstance(data.get("versions"), list):
                    raise ValueError("manifest: /versions must be a list")

                if "Last-Modified" in res.headers:
                    data["last_modified"] = res.headers["Last-Modified"]

                if self.cache_file is not None:
                    self.cache_file.parent.mkdir(parents=True, exist_ok=True)
                    with self.cache_file.open("wt") as cache_fp:
                        json.dump(data, cache_fp)

                self.data = data

            except HttpError as error:
                # Status 0 means a network error, in such case the cached data is used.
                if error.status in (0, 304) and cache_data is not None:
                    self.data = cache_data
                else:
                    raise

        return self.data

    def is_alias(self, version: str) -> bool:
        """Return true if the given version is a release or snapshot alias.
        """
        return version in ("release", "snapshot")

    def filter_latest(self, version: str) -> Tuple[str, bool]:
        """Replace the 'release' or 'snapshot' alias by the latest version id.

        :param version: The version id or alias.
        :return: A tuple containing the full version id and a boolean indicating if the
        given version identifier is an alias.
        """
        if self.is_alias(version):
            latest = self._ensure_data().get("latest", {}).get(version)
            if latest is not None:
                return latest, True
        return version, False

    def get_version(self, version: str) -> Optional[dict]:
        """Get a manifest's version entry, containing the descriptor's URL, its SHA-1 and
        its type.

        :param version: The version identifier or alias.
        :return: If found, the version is returned.
        :raises HttpError: Underlying HTTP error if manifest could not be requested.
        """
        version, _alias = self.filter_latest(version)
        for version_data in self._ensure_data()["versions"]:
            if version_data.get("id") == version:
                return version_data
        return None

    def all_versions(self) -> list:
        return self._ensure_data()["versions"]
