import pytest


def test_sha1():

    from cubicmc.util import calc_input_sha1, sha1_equals
    from io import BytesIO

    assert calc_input_sha1(BytesIO(b"hello world!")) == "430ce34d020724ed75a196dfc2ad67c77772d169"
    assert calc_input_sha1(BytesIO(b"hello world!"), buffer_len=2) == "430ce34d020724ed75a196dfc2ad67c77772d169"

    assert sha1_equals("430CE34D020724ED75A196DFC2AD67C77772D169", "430ce34d020724ed75a196dfc2ad67c77772d169")
    assert not sha1_equals(None, "430ce34d020724ed75a196dfc2ad67c77772d169")
    assert not sha1_equals(None, None)


def test_library_specifier():

    from cubicmc.util import LibrarySpecifier

    spec = LibrarySpecifier.from_str("org.lwjgl:lwjgl:3.3.1")
    assert (spec.group, spec.artifact, spec.version, spec.classifier, spec.extension) == ("org.lwjgl", "lwjgl", "3.3.1", None, "jar")
    assert spec.file_path() == "org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1.jar"

    spec = LibrarySpecifier.from_str("org.lwjgl:lwjgl:3.3.1:natives-linux")
    assert spec.classifier == "natives-linux"
    assert spec.file_path() == "org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1-natives-linux.jar"
    assert str(spec) == "org.lwjgl:lwjgl:3.3.1:natives-linux"

    spec = LibrarySpecifier.from_str("com.foo.bar:artifact:version@zip")
    assert spec.file_path() == "com/foo/bar/artifact/version/artifact-version.zip"
    assert str(spec) == "com.foo.bar:artifact:version@zip"

    assert LibrarySpecifier.from_str("a:b:c") == LibrarySpecifier("a", "b", "c")
    assert len({LibrarySpecifier.from_str("a:b:c"), LibrarySpecifier("a", "b", "c")}) == 1

    with pytest.raises(ValueError):
        LibrarySpecifier.from_str("a:b")
    with pytest.raises(ValueError):
        LibrarySpecifier.from_str("a:b:c@")


def test_replace_vars():

    from cubicmc.launch import replace_vars, replace_list_vars

    assert replace_vars("this is foo value: ${foo}", {"foo": "89658"}) == "this is foo value: 89658"

    assert list(replace_list_vars([
        "this is foo value: ${foo}",
        "this is bar value: ${bar}!!!",
        "this is both values: ${foo}/${bar}...",
        "this is unknown key: ${unknown}"
    ], {"foo": "89658", "bar": "test"})) == [
        "this is foo value: 89658",
        "this is bar value: test!!!",
        "this is both values: 89658/test...",
        "this is unknown key: ${unknown}"
    ]


def test_auth_offline():

    from cubicmc.auth import OfflineAuthSession

    session = OfflineAuthSession("Alex", None)
    assert session.username == "Alex"
    assert len(session.uuid) == 32
    assert session.uuid == OfflineAuthSession("Alex", None).uuid
    assert session.access_token == "0"
    assert session.user_type == "mojang"

    session = OfflineAuthSession("A" * 20, None)
    assert session.username == "A" * 16

    uuid = "0123456789abcdef0123456789abcdef"
    session = OfflineAuthSession(None, uuid)
    assert session.uuid == uuid
    assert session.username == uuid[:8]

    session = OfflineAuthSession(None, None)
    assert session.username == session.uuid[:8]


def test_watcher_group():

    from cubicmc.watcher import WatcherGroup, SimpleWatcher

    received = []
    group = WatcherGroup()
    group.add(SimpleWatcher({int: received.append}))
    group.add(SimpleWatcher({str: received.append}))

    group.handle(1)
    group.handle("foo")
    group.handle(2.0)

    assert sorted(map(str, received)) == ["1", "foo"]
