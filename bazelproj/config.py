from enum import Enum
from typing import Dict, Mapping, Optional, Union


class OptionKey(Enum):
    # Project (top-level) settings
    SDKROOT = "SDKROOT"
    IPHONEOS_DEPLOYMENT_TARGET = "IPHONEOS_DEPLOYMENT_TARGET"
    HEADER_SEARCH_PATHS = "HEADER_SEARCH_PATHS"
    # Per-target compiler and linker overrides
    OTHER_CFLAGS = "OTHER_CFLAGS"
    OTHER_LDFLAGS = "OTHER_LDFLAGS"
    OTHER_SWIFT_FLAGS = "OTHER_SWIFT_FLAGS"
    # Extra arguments appended to the build tool command line
    BAZEL_BUILD_OPTIONS = "BAZEL_BUILD_OPTIONS"


PROJECT_OPTION_KEYS = (
    OptionKey.SDKROOT,
    OptionKey.IPHONEOS_DEPLOYMENT_TARGET,
    OptionKey.HEADER_SEARCH_PATHS,
)

TARGET_OPTION_KEYS = (
    OptionKey.OTHER_CFLAGS,
    OptionKey.OTHER_LDFLAGS,
    OptionKey.OTHER_SWIFT_FLAGS,
)

OptionValue = Union[str, Mapping[str, str]]

# Key used inside a per-configuration mapping for the value shared by every configuration
PROJECT_VALUE_KEY = "project"


class GlobalOptions:
    """Immutable bag of generator options.

    Each option holds an optional project value (applied to every configuration)
    and optional per-configuration overrides, e.g.

        GlobalOptions({
            OptionKey.SDKROOT: "iphoneos",
            OptionKey.OTHER_CFLAGS: {"project": "-DFOO", "Debug": "-DFOO -DDEBUG"},
        })
    """

    def __init__(self, values: Optional[Mapping[OptionKey, OptionValue]] = None):
        self._project_values: Dict[OptionKey, str] = {}
        self._configuration_values: Dict[OptionKey, Dict[str, str]] = {}
        for key, value in (values or {}).items():
            if not isinstance(key, OptionKey):
                raise TypeError(f"expected OptionKey, got {type(key)}")
            if isinstance(value, str):
                self._project_values[key] = value
            elif isinstance(value, Mapping):
                per_config = dict(value)
                project_value = per_config.pop(PROJECT_VALUE_KEY, None)
                if project_value is not None:
                    self._project_values[key] = str(project_value)
                self._configuration_values[key] = {
                    str(k): str(v) for k, v in per_config.items()
                }
            else:
                raise TypeError(f"unsupported value for option {key.name}: {value!r}")

    def project_value(self, key: OptionKey) -> Optional[str]:
        return self._project_values.get(key)

    def value(self, key: OptionKey, configuration: Optional[str] = None) -> Optional[str]:
        if configuration is not None:
            per_config = self._configuration_values.get(key, {})
            if configuration in per_config:
                return per_config[configuration]
        return self._project_values.get(key)

    def has_configuration_values(self, key: OptionKey) -> bool:
        return bool(self._configuration_values.get(key))

    def __contains__(self, key: OptionKey) -> bool:
        return key in self._project_values or self.has_configuration_values(key)

    def __repr__(self) -> str:
        return (
            f"GlobalOptions(project={self._project_values!r}, "
            f"configurations={self._configuration_values!r})"
        )

    @staticmethod
    def from_json(data: Mapping[str, OptionValue]) -> "GlobalOptions":
        values: Dict[OptionKey, OptionValue] = {}
        for name, value in data.items():
            try:
                key = OptionKey[name]
            except KeyError:
                raise ValueError(f"unknown option '{name}'") from None
            values[key] = value
        return GlobalOptions(values)
