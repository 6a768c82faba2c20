"""Content-addressed store for asset objects, and asset index parsing.

Objects are stored under `objects/<hash[0:2]>/<hash>`, so identical assets shared by
different versions are only stored and downloaded once.
"""

from json import JSONDecodeError
from pathlib import Path
import json

from .download import DownloadEntry, DownloadList

from typing import Any, Dict, Optional


RESOURCES_URL = "https://resources.download.minecraft.net/"


class AssetObject:
    """An object of an asset index, identified by its hash.
    """

    __slots__ = "hash", "size"

    def __init__(self, hash: str, size: int) -> None:
        self.hash = hash
        self.size = size

    def __repr__(self) -> str:
        return f"<AssetObject {self.hash} ({self.size})>"


class AssetIndex:
    """A parsed asset index, mapping logical asset names to their object.
    """

    def __init__(self, id: str, objects: Dict[str, AssetObject], *,
        map_to_resources: bool = False,
        virtual: bool = False
    ) -> None:
        self.id = id
        self.objects = objects
        self.map_to_resources = map_to_resources  # For version <= 13w23b
        self.virtual = virtual  # For 13w23b < version <= 13w48b (1.7.2)

    @classmethod
    def from_json(cls, id: str, data: Any) -> "AssetIndex":

        if not isinstance(data, dict):
            raise ValueError("assets index: / must be an object")

        map_to_resources = data.get("map_to_resources", False)
        virtual = data.get("virtual", False)

        if not isinstance(map_to_resources, bool):
            raise ValueError("assets index: /map_to_resources must be a boolean")
        if not isinstance(virtual, bool):
            raise ValueError("assets index: /virtual must be a boolean")

        data_objects = data.get("objects")
        if not isinstance(data_objects, dict):
            raise ValueError("assets index: /objects must be an object")

        objects = {}
        for asset_id, asset_obj in data_objects.items():

            if not isinstance(asset_obj, dict):
                raise ValueError(f"assets index: /objects/{asset_id} must be an object")

            asset_hash = asset_obj.get("hash")
            if not isinstance(asset_hash, str) or len(asset_hash) < 2:
                raise ValueError(f"assets index: /objects/{asset_id}/hash must be a string")

            asset_size = asset_obj.get("size")
            if not isinstance(asset_size, int):
                raise ValueError(f"assets index: /objects/{asset_id}/size must be an integer")

            objects[asset_id] = AssetObject(asset_hash, asset_size)

        return cls(id, objects, map_to_resources=map_to_resources, virtual=virtual)

    @classmethod
    def from_file(cls, id: str, file: Path) -> "AssetIndex":
        """Load an asset index from a file, raising ValueError if the file is not valid
        JSON or has not the expected structure, and OSError if it cannot be read.
        """
        try:
            with file.open("rb") as fp:
                data = json.load(fp)
        except JSONDecodeError as e:
            raise ValueError(f"assets index: invalid json ({e})")
        return cls.from_json(id, data)

    def __len__(self) -> int:
        return len(self.objects)


class ContentStore:
    """Maps asset objects to their content-addressed location and adds the missing ones
    to a download list.
    """

    def __init__(self, objects_dir: Path, base_url: str = RESOURCES_URL) -> None:
        self.objects_dir = objects_dir
        self.base_url = base_url

    def object_path(self, hash: str) -> Path:
        return self.objects_dir.joinpath(hash[:2], hash)

    def object_url(self, hash: str) -> str:
        return f"{self.base_url}{hash[:2]}/{hash}"

    def add(self, dl: DownloadList, obj: AssetObject, name: Optional[str] = None) -> bool:
        """Add the given object to the download list if it is not already satisfied,
        the object's hash is used as integrity check for the download.

        :return: True if the object needs to be downloaded, false if an existing file
        already has the expected size.
        """
        entry = DownloadEntry(self.object_url(obj.hash), self.object_path(obj.hash),
                              size=obj.size, sha1=obj.hash, name=name)
        return dl.add(entry, verify=True)
