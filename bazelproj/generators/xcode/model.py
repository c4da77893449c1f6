# Xcode project file model.
#
# This module defines the data model for the Xcode project file (.pbxproj) produced from a
# Bazel build graph. Objects live in a single arena (XcodeProject.objects) keyed by their
# deterministic identifiers; relations between objects are stored as Reference links rather
# than object pointers, so regenerating from the same input yields identical identifiers.

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Generic, Iterator, List, Optional, Type, TypeVar, Union
from abc import ABC, abstractmethod

import uuid


# Type definition for Xcode object identifiers
class XcodeID(str):
    pass


def generate_id(key: str) -> XcodeID:
    return XcodeID(uuid.uuid5(uuid.NAMESPACE_X500, key).hex.upper()[:24])


# Marks dataclass fields that only exist to disambiguate identifiers or link the arena,
# they are never written to the project file.
INTERNAL = {"serialize": False}


# Source Tree values used in PBXFileReference and PBXGroup
class SourceTree(Enum):
    # Relative to the parent group
    GROUP = "<group>"
    # Relative to the directory holding the .xcodeproj
    SOURCE_ROOT = "SOURCE_ROOT"
    # Relative to the build products directory, used for generated files
    BUILT_PRODUCTS_DIR = "BUILT_PRODUCTS_DIR"
    # Only used when the workspace is unrelated to the output folder
    ABSOLUTE = "<absolute>"


# File types used in PBXFileReference
class FileType(Enum):
    C = "sourcecode.c.c"
    CPP = "sourcecode.cpp.cpp"
    C_HEADER = "sourcecode.c.h"
    CPP_HEADER = "sourcecode.cpp.h"
    SWIFT = "sourcecode.swift"
    OBJC = "sourcecode.c.objc"
    OBJCPP = "sourcecode.cpp.objcpp"
    XIB = "file.xib"
    STORYBOARD = "file.storyboard"
    PLIST = "text.plist.xml"
    STRINGS = "text.plist.strings"
    ASSET_CATALOG = "folder.assetcatalog"
    DATA_MODEL = "wrapper.xcdatamodel"
    DATA_MODEL_CONTAINER = "wrapper.xcdatamodeld"
    FRAMEWORK = "wrapper.framework"
    APP = "wrapper.application"
    TEXT = "text"
    PYTHON = "text.script.python"

    @staticmethod
    def from_extension(ext: str) -> "FileType":
        if ext.startswith("."):
            ext = ext[1:]

        ext_to_type = {
            "c": FileType.C,
            "cc": FileType.CPP,
            "cpp": FileType.CPP,
            "cxx": FileType.CPP,
            "h": FileType.C_HEADER,
            "pch": FileType.C_HEADER,
            "hpp": FileType.CPP_HEADER,
            "swift": FileType.SWIFT,
            "m": FileType.OBJC,
            "mm": FileType.OBJCPP,
            "xib": FileType.XIB,
            "storyboard": FileType.STORYBOARD,
            "plist": FileType.PLIST,
            "strings": FileType.STRINGS,
            "xcassets": FileType.ASSET_CATALOG,
            "xcdatamodel": FileType.DATA_MODEL,
            "xcdatamodeld": FileType.DATA_MODEL_CONTAINER,
            "framework": FileType.FRAMEWORK,
            "app": FileType.APP,
            "bzl": FileType.PYTHON,
        }

        return ext_to_type.get(ext.lower(), FileType.TEXT)


# Product types used in PBXNativeTarget
class ProductType(Enum):
    APPLICATION = "com.apple.product-type.application"
    FRAMEWORK = "com.apple.product-type.framework"
    STATIC_LIBRARY = "com.apple.product-type.library.static"
    BUNDLE = "com.apple.product-type.bundle"
    TOOL = "com.apple.product-type.tool"
    UNIT_TEST_BUNDLE = "com.apple.product-type.bundle.unit-test"
    APP_EXTENSION = "com.apple.product-type.app-extension"


class ProxyType(Enum):
    TARGET_DEPENDENCY = 1  # For target dependencies
    PRODUCT_REFERENCE = 2  # For product references


ReferenceT = TypeVar("ReferenceT", bound="XcodeObject")


@dataclass
class Reference(Generic[ReferenceT]):
    id: XcodeID
    comment: Optional[str] = None


# Base class for all Xcode objects
@dataclass
class XcodeObject(ABC):
    # ID will be generated in __post_init__
    id: XcodeID = field(init=False)

    def __post_init__(self) -> None:
        self.id = generate_id(self.key())

    @abstractmethod
    def key(self) -> str:
        pass

    def ref(self) -> Reference:
        return Reference(self.id, getattr(self, "name", None) or None)


# PBX* object types
@dataclass
class PBXFileReference(XcodeObject):
    name: Optional[str]
    path: str  # Relative to the parent group unless sourceTree says otherwise
    sourceTree: SourceTree
    lastKnownFileType: Optional[FileType] = None
    fileEncoding: int = 4  # UTF-8 encoding, required by Xcode format
    full_path: str = field(default="", metadata=INTERNAL)
    parent: Optional[XcodeID] = field(default=None, metadata=INTERNAL)

    def key(self) -> str:
        return f"PBXFileReference:{self.full_path or self.path}"


@dataclass
class PBXGroup(XcodeObject):
    name: Optional[str]
    sourceTree: SourceTree
    children: List[Reference[Union["PBXGroup", PBXFileReference]]] = field(
        default_factory=list
    )
    path: Optional[str] = None
    group_id: str = field(default="", metadata=INTERNAL)
    parent: Optional[XcodeID] = field(default=None, metadata=INTERNAL)

    def key(self) -> str:
        return f"PBXGroup:{self.group_id or self.name or ''}:{self.path or ''}"


@dataclass
class PBXBuildFile(XcodeObject):
    fileRef: Reference[PBXFileReference]
    target_name: str = field(metadata=INTERNAL)
    settings: Optional[Dict[str, str]] = None

    def key(self) -> str:
        return f"PBXBuildFile:{self.fileRef.id}:{self.target_name}"


@dataclass
class PBXSourcesBuildPhase(XcodeObject):
    files: List[Reference[PBXBuildFile]]
    target_name: str = field(metadata=INTERNAL)
    buildActionMask: int = 2147483647
    runOnlyForDeploymentPostprocessing: int = 0

    def key(self) -> str:
        return f"{self.__class__.__name__}:{self.target_name}"


@dataclass
class PBXShellScriptBuildPhase(XcodeObject):
    shellScript: str
    target_name: str = field(metadata=INTERNAL)
    name: Optional[str] = None
    files: List[Reference[PBXBuildFile]] = field(default_factory=list)
    buildActionMask: int = 2147483647
    runOnlyForDeploymentPostprocessing: int = 0
    inputPaths: List[str] = field(default_factory=list)
    outputPaths: List[str] = field(default_factory=list)
    shellPath: str = "/bin/bash"
    showEnvVarsInLog: int = 1

    def key(self) -> str:
        return f"{self.__class__.__name__}:{self.target_name}"


BuildPhase = Union[PBXSourcesBuildPhase, PBXShellScriptBuildPhase]


@dataclass
class PBXContainerItemProxy(XcodeObject):
    containerPortal: Reference  # The PBXProject
    remoteGlobalIDString: XcodeID  # ID of the referenced target
    remoteInfo: str  # Name of the referenced target
    proxyType: ProxyType = ProxyType.TARGET_DEPENDENCY
    owner: str = field(default="", metadata=INTERNAL)

    def key(self) -> str:
        return f"PBXContainerItemProxy:{self.owner}:{self.remoteGlobalIDString}:{self.remoteInfo}"


@dataclass
class PBXTargetDependency(XcodeObject):
    targetProxy: Reference[PBXContainerItemProxy]
    target: Optional[Reference] = None

    def key(self) -> str:
        return f"PBXTargetDependency:{self.targetProxy.id}"


@dataclass
class XCBuildConfiguration(XcodeObject):
    name: str
    buildSettings: Dict[str, str]
    owner: str = field(default="", metadata=INTERNAL)  # disambiguate configs across project/targets

    def key(self) -> str:
        owner_part = self.owner if self.owner else "GLOBAL"
        return f"XCBuildConfiguration:{owner_part}:{self.name}"


@dataclass
class XCConfigurationList(XcodeObject):
    buildConfigurations: List[Reference[XCBuildConfiguration]]
    defaultConfigurationIsVisible: int = 0
    defaultConfigurationName: str = "Release"
    owner: str = field(default="", metadata=INTERNAL)  # disambiguate lists across project/targets

    def key(self) -> str:
        owner_part = self.owner if self.owner else "GLOBAL"
        return f"XCConfigurationList:{owner_part}"


@dataclass
class PBXNativeTarget(XcodeObject):
    name: str
    buildConfigurationList: Reference[XCConfigurationList]
    buildPhases: List[Reference[BuildPhase]]
    productName: str
    productType: ProductType
    dependencies: List[Reference[PBXTargetDependency]] = field(default_factory=list)
    buildRules: List[Reference] = field(default_factory=list)

    def key(self) -> str:
        return f"PBXNativeTarget:{self.name}"


@dataclass
class PBXLegacyTarget(XcodeObject):
    name: str
    buildConfigurationList: Reference[XCConfigurationList]
    buildToolPath: str
    buildArgumentsString: str
    passBuildSettingsInEnvironment: int = 1
    buildWorkingDirectory: str = ""
    buildPhases: List[Reference[BuildPhase]] = field(default_factory=list)
    dependencies: List[Reference[PBXTargetDependency]] = field(default_factory=list)
    productName: Optional[str] = None

    def key(self) -> str:
        return f"PBXLegacyTarget:{self.name}"


Target = Union[PBXNativeTarget, PBXLegacyTarget]


@dataclass
class PBXProject(XcodeObject):
    name: str = field(metadata=INTERNAL)
    buildConfigurationList: Reference[XCConfigurationList]
    mainGroup: Reference[PBXGroup]
    targets: List[Reference[Target]] = field(default_factory=list)
    compatibilityVersion: str = "Xcode 3.2"
    developmentRegion: str = "English"
    hasScannedForEncodings: int = 0
    knownRegions: List[str] = field(default_factory=lambda: ["en"])
    projectDirPath: str = ""
    projectRoot: str = ""

    def key(self) -> str:
        return f"PBXProject:{self.name}"


ObjectT = TypeVar("ObjectT", bound=XcodeObject)


# Complete project representation: the arena of every object plus the root object
@dataclass
class XcodeProject:
    project: PBXProject
    objects: Dict[XcodeID, XcodeObject] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.project.name

    def add(self, obj: ObjectT) -> ObjectT:
        existing = self.objects.get(obj.id)
        if existing is not None and existing is not obj:
            raise ValueError(f"duplicate object identifier for {obj.key()}")
        self.objects[obj.id] = obj
        return obj

    def get(self, ref: Union[Reference, XcodeID]) -> XcodeObject:
        object_id = ref.id if isinstance(ref, Reference) else ref
        return self.objects[object_id]

    def objects_of_type(self, object_type: Type[ObjectT]) -> Iterator[ObjectT]:
        for obj in self.objects.values():
            if isinstance(obj, object_type):
                yield obj

    @property
    def main_group(self) -> PBXGroup:
        group = self.get(self.project.mainGroup)
        assert isinstance(group, PBXGroup)
        return group

    @property
    def targets(self) -> List[Target]:
        return [self.get(ref) for ref in self.project.targets]  # type: ignore[misc]

    @property
    def target_by_name(self) -> Dict[str, Target]:
        return {target.name: target for target in self.targets}

    def configuration_list(self, owner: Union[Target, PBXProject]) -> XCConfigurationList:
        config_list = self.get(owner.buildConfigurationList)
        assert isinstance(config_list, XCConfigurationList)
        return config_list

    # Configurations of a target (or of the project) keyed by configuration name
    def configurations(
        self, owner: Union[Target, PBXProject]
    ) -> Dict[str, XCBuildConfiguration]:
        config_list = self.configuration_list(owner)
        configs = (self.get(ref) for ref in config_list.buildConfigurations)
        return {c.name: c for c in configs}  # type: ignore[attr-defined]

    def build_phases(self, target: Target) -> List[BuildPhase]:
        return [self.get(ref) for ref in target.buildPhases]  # type: ignore[misc]

    def dependency_targets(self, target: Target) -> List[Target]:
        result = []
        for dep_ref in target.dependencies:
            dependency = self.get(dep_ref)
            assert isinstance(dependency, PBXTargetDependency)
            proxy = self.get(dependency.targetProxy)
            assert isinstance(proxy, PBXContainerItemProxy)
            result.append(self.get(proxy.remoteGlobalIDString))
        return result
