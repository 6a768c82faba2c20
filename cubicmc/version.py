"""Version descriptors, their libraries and the resolution of an installed version,
possibly inheriting from a base version, into a single merged view.
"""

from json import JSONDecodeError
from pathlib import Path
import json

from .rules import Rule, parse_rules, interpret_rules, minecraft_arch_bits
from .util import LibrarySpecifier
from .watcher import Watcher

from typing import Any, Dict, List, Optional, Tuple, Union


LOADER_VANILLA = "vanilla"
LOADER_FORGE = "forge"
LOADER_FABRIC = "fabric"

LOADERS = (LOADER_VANILLA, LOADER_FORGE, LOADER_FABRIC)

# Classifier names of native bundles per OS, used when no natives mapping is given.
NATIVES_CLASSIFIERS = {
    "windows": "natives-windows",
    "linux": "natives-linux",
    "osx": "natives-macos",
}

# A structured argument is either a plain token or a conditional object.
Argument = Union[str, Dict[str, Any]]


class Artifact:
    """A downloadable file of a descriptor, the path is relative to the libraries
    directory and is only relevant for libraries.
    """

    __slots__ = "url", "path", "sha1", "size"

    def __init__(self, url: str, path: Optional[str] = None, sha1: Optional[str] = None, size: Optional[int] = None) -> None:
        self.url = url
        self.path = path
        self.sha1 = sha1
        self.size = size

    @classmethod
    def from_json(cls, value: Any, path: str) -> "Artifact":

        if not isinstance(value, dict):
            raise ValueError(f"{path} must be an object")

        url = value.get("url")
        if not isinstance(url, str):
            raise ValueError(f"{path}/url must be a string")

        artifact_path = value.get("path")
        if artifact_path is not None and not isinstance(artifact_path, str):
            raise ValueError(f"{path}/path must be a string")

        sha1 = value.get("sha1")
        if sha1 is not None and not isinstance(sha1, str):
            raise ValueError(f"{path}/sha1 must be a string")

        size = value.get("size")
        if size is not None and not isinstance(size, int):
            raise ValueError(f"{path}/size must be an integer")

        return cls(url, artifact_path, sha1, size)

    def __repr__(self) -> str:
        return f"<Artifact {self.url}>"


class LibraryEntry:
    """A library of a version descriptor.
    """

    __slots__ = "name", "spec", "rules", "artifact", "classifiers", "natives", "url"

    def __init__(self,
        name: str, *,
        rules: Optional[List[Rule]] = None,
        artifact: Optional[Artifact] = None,
        classifiers: Optional[Dict[str, Artifact]] = None,
        natives: Optional[Dict[str, str]] = None,
        url: Optional[str] = None
    ) -> None:
        self.name = name
        self.spec = LibrarySpecifier.from_str(name)
        self.rules = rules
        self.artifact = artifact
        self.classifiers = classifiers
        self.natives = natives
        self.url = url

    @classmethod
    def from_json(cls, value: Any, path: str) -> "LibraryEntry":

        if not isinstance(value, dict):
            raise ValueError(f"{path} must be an object")

        name = value.get("name")
        if not isinstance(name, str):
            raise ValueError(f"{path}/name must be a string")

        rules = value.get("rules")
        if rules is not None:
            rules = parse_rules(rules, f"{path}/rules")

        artifact = None
        classifiers = None
        downloads = value.get("downloads")
        if downloads is not None:

            if not isinstance(downloads, dict):
                raise ValueError(f"{path}/downloads must be an object")

            dl_artifact = downloads.get("artifact")
            if dl_artifact is not None:
                artifact = Artifact.from_json(dl_artifact, f"{path}/downloads/artifact")

            dl_classifiers = downloads.get("classifiers")
            if dl_classifiers is not None:
                if not isinstance(dl_classifiers, dict):
                    raise ValueError(f"{path}/downloads/classifiers must be an object")
                classifiers = {
                    key: Artifact.from_json(dl_classifier, f"{path}/downloads/classifiers/{key}")
                    for key, dl_classifier in dl_classifiers.items()
                }

        natives = value.get("natives")
        if natives is not None:
            if not isinstance(natives, dict) or not all(isinstance(v, str) for v in natives.values()):
                raise ValueError(f"{path}/natives must be an object of strings")

        url = value.get("url")
        if url is not None and not isinstance(url, str):
            raise ValueError(f"{path}/url must be a string")

        try:
            return cls(name, rules=rules, artifact=artifact, classifiers=classifiers, natives=natives, url=url)
        except ValueError as e:
            raise ValueError(f"{path}/name is not a valid specifier ({e})")

    def is_allowed(self, os_name: Optional[str] = None) -> bool:
        return interpret_rules(self.rules, os_name)

    def native_classifier(self, os_name: str) -> Optional[str]:
        """Return the classifier of the native bundle for the given OS. The natives
        mapping takes precedence, else the common classifier name is used if present in
        the classifiers.
        """

        if self.natives is not None:
            classifier = self.natives.get(os_name)
            if classifier is not None and minecraft_arch_bits is not None:
                classifier = classifier.replace("${arch}", str(minecraft_arch_bits))
            return classifier

        classifier = NATIVES_CLASSIFIERS.get(os_name)
        if classifier is not None and self.classifiers is not None and classifier in self.classifiers:
            return classifier

        return None

    def is_direct_native(self, os_name: str) -> bool:
        """Return true if this library is itself a native bundle for the OS, as given by
        its name classifier ('natives-<os>').
        """
        classifier = self.spec.classifier
        return classifier is not None and classifier in (f"natives-{os_name}", NATIVES_CLASSIFIERS.get(os_name))

    def is_native(self, os_name: str) -> bool:
        return self.is_direct_native(os_name) or (self.natives is not None and os_name in self.natives)

    def native_artifact(self, os_name: str) -> Optional[Tuple[str, Optional[Artifact]]]:
        """Return the relative path and the downloadable artifact, if any, of the native
        bundle of this library for the given OS, none if this library has no native.
        """

        classifier = self.native_classifier(os_name)
        if classifier is not None:
            artifact = None if self.classifiers is None else self.classifiers.get(classifier)
            spec = LibrarySpecifier(self.spec.group, self.spec.artifact, self.spec.version, classifier, self.spec.extension)
            return _artifact_path(artifact, spec), artifact

        if self.is_direct_native(os_name):
            return _artifact_path(self.artifact, self.spec), self.artifact

        return None

    def jar_path(self) -> Optional[str]:
        """Return the class path jar of this library relative to the libraries directory.
        Libraries that are only native bundles, given by the natives mapping, have no
        jar unless an explicit artifact is given.
        """
        if self.artifact is not None and self.artifact.path:
            return self.artifact.path
        if self.natives is not None:
            return None
        return self.spec.file_path()

    def jar_url(self) -> Optional[str]:
        """Return the download URL of the class path jar, from the artifact or from the
        maven repository URL of this library, none if no download source is known.
        """
        if self.artifact is not None and len(self.artifact.url):
            return self.artifact.url
        if self.url is not None and len(self.url):
            repo_url = self.url if self.url.endswith("/") else f"{self.url}/"
            return f"{repo_url}{self.spec.file_path()}"
        return None

    def __repr__(self) -> str:
        return f"<LibraryEntry {self.name}>"


class VersionDescriptor:
    """A version descriptor parsed from its JSON document, never modified once loaded.
    """

    def __init__(self, id: str) -> None:
        self.id = id
        self.main_class: Optional[str] = None
        self.inherits_from: Optional[str] = None
        self.assets: Optional[str] = None
        self.asset_index: Optional[Artifact] = None
        self.libraries: List[LibraryEntry] = []
        self.jvm_arguments: Optional[List[Argument]] = None
        self.game_arguments: Optional[List[Argument]] = None
        self.legacy_arguments: Optional[str] = None
        self.client_download: Optional[Artifact] = None
        self.type: Optional[str] = None

    @classmethod
    def from_json(cls, id: str, data: Any) -> "VersionDescriptor":
        """Parse a descriptor, the given id is used if the document doesn't specify one.

        :raises ValueError: If the document doesn't have the expected structure.
        """

        if not isinstance(data, dict):
            raise ValueError("metadata: / must be an object")

        data_id = data.get("id", id)
        if not isinstance(data_id, str):
            raise ValueError("metadata: /id must be a string")

        desc = cls(data_id)
        desc.main_class = _get_str(data, "mainClass")
        desc.inherits_from = _get_str(data, "inheritsFrom")
        desc.assets = _get_str(data, "assets")
        desc.type = _get_str(data, "type")
        desc.legacy_arguments = _get_str(data, "minecraftArguments")

        asset_index = data.get("assetIndex")
        if asset_index is not None:
            desc.asset_index = Artifact.from_json(asset_index, "metadata: /assetIndex")
            if desc.assets is None:
                asset_index_id = asset_index.get("id")
                if asset_index_id is not None and not isinstance(asset_index_id, str):
                    raise ValueError("metadata: /assetIndex/id must be a string")
                desc.assets = asset_index_id

        libraries = data.get("libraries")
        if libraries is not None:
            if not isinstance(libraries, list):
                raise ValueError("metadata: /libraries must be a list")
            desc.libraries = [LibraryEntry.from_json(library, f"metadata: /libraries/{i}") for i, library in enumerate(libraries)]

        arguments = data.get("arguments")
        if arguments is not None:
            if not isinstance(arguments, dict):
                raise ValueError("metadata: /arguments must be an object")
            desc.jvm_arguments = _get_args(arguments, "jvm")
            desc.game_arguments = _get_args(arguments, "game")

        downloads = data.get("downloads")
        if downloads is not None:
            if not isinstance(downloads, dict):
                raise ValueError("metadata: /downloads must be an object")
            client = downloads.get("client")
            if client is not None:
                desc.client_download = Artifact.from_json(client, "metadata: /downloads/client")

        return desc

    @classmethod
    def from_file(cls, id: str, file: Path) -> "VersionDescriptor":
        """Load a descriptor from a file, this may raise OSError if the file can't be
        read and ValueError if it's not a valid descriptor.
        """
        try:
            with file.open("rb") as fp:
                data = json.load(fp)
        except JSONDecodeError as e:
            raise ValueError(f"metadata: invalid json ({e})")
        return cls.from_json(id, data)

    def __repr__(self) -> str:
        return f"<VersionDescriptor {self.id}>"


class MergedVersion:
    """Read-only merged view of a descriptor and its optional base descriptor. Scalar
    fields and argument lists are overridden by the child, libraries are the union of
    both lists, child first.
    """

    def __init__(self, child: VersionDescriptor, base: Optional[VersionDescriptor] = None) -> None:
        self.child = child
        self.base = base

    @property
    def id(self) -> str:
        return self.child.id

    @property
    def client_version_id(self) -> str:
        """The version owning the client jar, the base one if present.
        """
        return self.child.id if self.base is None else self.base.id

    @property
    def main_class(self) -> Optional[str]:
        return self._override("main_class")

    @property
    def assets_index_id(self) -> str:
        return self._override("assets") or "legacy"

    @property
    def asset_index(self) -> Optional[Artifact]:
        return self._override("asset_index")

    @property
    def client_download(self) -> Optional[Artifact]:
        if self.base is not None:
            return self.base.client_download
        return self.child.client_download

    @property
    def version_type(self) -> str:
        return self._override("type") or "release"

    @property
    def jvm_arguments(self) -> Optional[List[Argument]]:
        """Structured JVM arguments, none if both descriptors have none.
        """
        return self._override("jvm_arguments")

    @property
    def game_arguments(self) -> Union[List[Argument], str, None]:
        """Source of the game arguments: structured arguments of the child, else of the
        base, else legacy string of the child, else of the base.
        """
        structured = self._override("game_arguments")
        if structured is not None:
            return structured
        return self._override("legacy_arguments")

    @property
    def libraries(self) -> List[LibraryEntry]:
        return _union(self.child.libraries, [] if self.base is None else self.base.libraries)

    def _override(self, field: str) -> Any:
        value = getattr(self.child, field)
        if not value and self.base is not None:
            value = getattr(self.base, field)
        return value if value else None

    def __repr__(self) -> str:
        return f"<MergedVersion {self.child.id} base={None if self.base is None else self.base.id}>"


def _union(child: List[LibraryEntry], base: List[LibraryEntry]) -> List[LibraryEntry]:
    """Union of two library lists, child first. Every entry of a single list is kept,
    some descriptors declare a library twice, once for its jar and once for its natives.
    A base entry is dropped if the child declares the same library of the same kind.
    """
    child_keys = {_library_key(library) for library in child}
    return [*child, *(library for library in base if _library_key(library) not in child_keys)]


def _library_key(library: LibraryEntry) -> Tuple[str, bool]:
    return library.name, library.natives is not None


class VersionResolver:
    """Load descriptors from the versions directory, following at most one level of
    inheritance.
    """

    def __init__(self, versions_dir: Path, watcher: Optional[Watcher] = None) -> None:
        self.versions_dir = versions_dir
        self.watcher = Watcher() if watcher is None else watcher

    @staticmethod
    def descriptor_id(version: str, loader: str = LOADER_VANILLA, loader_version: Optional[str] = None) -> str:
        """Return the id (and directory name) of the descriptor for a loader.
        """

        if loader == LOADER_VANILLA:
            return version

        if loader_version is None:
            raise ValueError(f"a loader version is required for {loader}")

        if loader == LOADER_FORGE:
            return f"{version}-forge-{loader_version}"
        elif loader == LOADER_FABRIC:
            return f"fabric-loader-{loader_version}-{version}"
        else:
            raise ValueError(f"unknown loader: {loader}")

    def descriptor_file(self, version_id: str) -> Path:
        return self.versions_dir / version_id / f"{version_id}.json"

    def load(self, version_id: str) -> VersionDescriptor:
        """Load a single descriptor.

        :raises VersionNotFoundError: If the descriptor file doesn't exist.
        :raises VersionMalformedError: If the descriptor can't be read or parsed.
        """

        file = self.descriptor_file(version_id)
        if not file.is_file():
            raise VersionNotFoundError(version_id)

        try:
            return VersionDescriptor.from_file(version_id, file)
        except (OSError, ValueError) as e:
            raise VersionMalformedError(version_id, str(e))

    def resolve(self, version: str, loader: str = LOADER_VANILLA, loader_version: Optional[str] = None) -> MergedVersion:
        """Resolve a version for the given loader into a merged view. If the descriptor
        inherits from a base version, the base is loaded from the vanilla path.
        """

        child = self.load(self.descriptor_id(version, loader, loader_version))

        base = None
        if child.inherits_from is not None:
            base = self.load(child.inherits_from)

        merged = MergedVersion(child, base)
        self.watcher.handle(VersionLoadedEvent(child.id, None if base is None else base.id))
        return merged


def _get_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"metadata: /{key} must be a string")
    return value


def _get_args(arguments: dict, key: str) -> Optional[List[Argument]]:
    value = arguments.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValueError(f"metadata: /arguments/{key} must be a list")
    for i, arg in enumerate(value):
        if not isinstance(arg, (str, dict)):
            raise ValueError(f"metadata: /arguments/{key}/{i} must be an object or a string")
    return value


def _artifact_path(artifact: Optional[Artifact], spec: LibrarySpecifier) -> str:
    if artifact is not None and artifact.path:
        return artifact.path
    return spec.file_path()


class VersionNotFoundError(Exception):
    """Raised when a version descriptor doesn't exist, locally or in the manifest.
    """
    def __init__(self, version: str) -> None:
        self.version = version
    def __str__(self) -> str:
        return f"version not found: {self.version}"


class VersionMalformedError(ValueError):
    """Raised when a version descriptor can't be parsed as the expected structure.
    """
    def __init__(self, version: str, reason: str) -> None:
        self.version = version
        self.reason = reason
    def __str__(self) -> str:
        return f"version {self.version} is malformed: {self.reason}"


class VersionLoadedEvent:
    """Event triggered when a version, and its optional base, has been loaded.
    """
    __slots__ = "version", "base"
    def __init__(self, version: str, base: Optional[str]) -> None:
        self.version = version
        self.base = base
