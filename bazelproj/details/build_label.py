import hashlib

from bazelproj.errors import LabelParseError


# Parses labels of the form "pkg/path:name", "//pkg/path:name" or "//pkg/path"
# (shorthand for "//pkg/path:path")...
class BuildLabel:
    def __init__(self, value: str):
        if not isinstance(value, str) or not value.strip():
            raise LabelParseError(f"empty build label {value!r}")
        if any(c.isspace() for c in value):
            raise LabelParseError(f"build label '{value}' contains whitespace")
        stripped = value[2:] if value.startswith("//") else value
        if stripped.count(":") > 1:
            raise LabelParseError(f"build label '{value}' has more than one ':'")
        if ":" in stripped:
            package_name, target_name = stripped.split(":")
            if not target_name:
                raise LabelParseError(f"build label '{value}' has an empty target name")
        else:
            package_name = stripped
            target_name = stripped.rsplit("/", 1)[-1]
            if not target_name:
                raise LabelParseError(f"build label '{value}' has no target name")
        if package_name.startswith("/") or package_name.endswith("/"):
            raise LabelParseError(f"build label '{value}' has a malformed package path")
        self.package_name = package_name
        self.target_name = target_name
        self.value = f"{package_name}:{target_name}"

    # Stable across processes, unlike hash() of a str...
    @property
    def hash_value(self) -> int:
        digest = hashlib.blake2b(self.value.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest, "big")

    def __eq__(self, other) -> bool:
        return isinstance(other, BuildLabel) and self.value == other.value

    def __hash__(self) -> int:
        return hash(self.value)

    def __lt__(self, other: "BuildLabel") -> bool:
        return self.value < other.value

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"BuildLabel({self.value!r})"
