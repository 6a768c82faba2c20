import json
import pytest

from cubicmc.store import AssetIndex, AssetObject, ContentStore
from cubicmc.download import DownloadList
from cubicmc.standard import acquire_assets

from conftest import Response
from helpers import sha1, write_file, write_version


ASSET_DATA = b"hello asset data!"
ASSET_HASH = sha1(ASSET_DATA)


def test_object_layout(tmp_path):

    store = ContentStore(tmp_path / "objects", "http://mirror.local/")
    assert store.object_path("abcd1234") == tmp_path / "objects" / "ab" / "abcd1234"
    assert store.object_url("abcd1234") == "http://mirror.local/ab/abcd1234"

    dl = DownloadList()
    assert store.add(dl, AssetObject("abcd1234", 17), "minecraft/sounds/foo.ogg")
    assert dl.count == 1
    assert dl.entries[0].sha1 == "abcd1234"
    assert dl.entries[0].size == 17

    # Present objects with the expected size are not downloaded again.
    write_file(store.object_path("ef012345"), b"x" * 5)
    assert not store.add(dl, AssetObject("ef012345", 5))
    assert dl.count == 1


def test_index_parsing():

    index = AssetIndex.from_json("1.7.10", {
        "virtual": True,
        "objects": {
            "icons/icon_16x16.png": {"hash": "bdf48ef6b5d0d23bbb02e17d04865216179f510a", "size": 3665},
            "lang/en_us.lang": {"hash": "4c3a9ef5e3ab27bc1ae08bf1b4ecd0b15b1a6bb6", "size": 12},
        }
    })

    assert index.virtual
    assert not index.map_to_resources
    assert len(index) == 2
    assert index.objects["lang/en_us.lang"].size == 12


@pytest.mark.parametrize("data", [
    [],
    {"objects": []},
    {"objects": {"foo": {"hash": "abcd"}}},
    {"objects": {"foo": {"size": 12}}},
    {"virtual": "yes", "objects": {}},
])
def test_index_malformed(data):
    with pytest.raises(ValueError):
        AssetIndex.from_json("foo", data)


def test_acquire_single_asset(file_server, context):

    index_data = json.dumps({"objects": {"minecraft/sounds/ambient.ogg": {"hash": ASSET_HASH, "size": 17}}}).encode()
    index_url = file_server.route("/indexes/5.json", Response(200, index_data))
    file_server.route(f"/objects/{ASSET_HASH[:2]}/{ASSET_HASH}", Response(200, ASSET_DATA))

    write_version(context, "1.20.1", {
        "id": "1.20.1",
        "mainClass": "net.minecraft.client.main.Main",
        "assetIndex": {"id": "5", "url": index_url, "sha1": sha1(index_data), "size": len(index_data)},
    })

    report = acquire_assets("1.20.1", 4, context, resources_url=file_server.url("/objects/"))

    assert report.success == 1
    assert report.failed == 0
    assert file_server.hits[f"/objects/{ASSET_HASH[:2]}/{ASSET_HASH}"] == 1
    assert (context.assets_dir / "indexes" / "5.json").is_file()
    assert (context.assets_dir / "objects" / ASSET_HASH[:2] / ASSET_HASH).read_bytes() == ASSET_DATA

    # A second acquisition finds everything in place.
    report = acquire_assets("1.20.1", 4, context, resources_url=file_server.url("/objects/"))
    assert report.success == 1
    assert report.failed == 0
    assert file_server.hits[f"/objects/{ASSET_HASH[:2]}/{ASSET_HASH}"] == 1
    assert file_server.hits["/indexes/5.json"] == 1


def test_acquire_shared_and_failed_assets(file_server, context):

    missing_hash = sha1(b"missing")
    index = {
        "virtual": True,
        "objects": {
            "a.ogg": {"hash": ASSET_HASH, "size": 17},
            "b.ogg": {"hash": ASSET_HASH, "size": 17},
            "c.ogg": {"hash": missing_hash, "size": 7},
        }
    }
    write_file(context.assets_dir / "indexes" / "legacy.json", json.dumps(index).encode())
    file_server.route(f"/objects/{ASSET_HASH[:2]}/{ASSET_HASH}", Response(200, ASSET_DATA))

    write_version(context, "old", {"id": "old", "assets": "legacy"})

    report = acquire_assets("old", 2, context, resources_url=file_server.url("/objects/"))

    # Both names share a single object, only fetched once.
    assert report.success == 1
    assert report.failed == 1
    assert report.errors[0].entry.sha1 == missing_hash
    assert file_server.hits[f"/objects/{ASSET_HASH[:2]}/{ASSET_HASH}"] == 1

    virtual_dir = context.assets_dir / "virtual" / "legacy"
    assert (virtual_dir / "a.ogg").read_bytes() == ASSET_DATA
    assert (virtual_dir / "b.ogg").read_bytes() == ASSET_DATA
    assert not (virtual_dir / "c.ogg").exists()
