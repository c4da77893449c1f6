"""
Xcode project file formatter.

This module converts an XcodeProject into the text of a project.pbxproj file. Objects are
taken from the project's arena, grouped into one section per object type, and written in
identifier order so the output is byte-identical for identical input. Values are formatted
with a recursive, type-driven approach without assumptions about specific fields.
"""

import dataclasses
import enum
import re
from collections import defaultdict
from typing import Dict, List, Union

from bazelproj.generators.xcode.model import Reference, XcodeID, XcodeObject, XcodeProject

FormattableValue = Union[None, XcodeObject, Reference, dict, list, enum.Enum, int, float, bool, str, XcodeID, type]

# Dictionary keys matching this pattern can be written without quotes
_BARE_KEY = re.compile(r"^[A-Za-z0-9_./$]+$")

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\t": "\\t",
}


def format_xcode_project(project: XcodeProject) -> str:
    """
    Convert an XcodeProject to its string representation.

    Args:
        project: The XcodeProject to format.

    Returns:
        A string containing the formatted Xcode project file content.
    """
    result = "// !$*UTF8*$!\n{\n"
    result += "\tarchiveVersion = 1;\n"
    result += "\tclasses = {\n\t};\n"
    result += "\tobjectVersion = 46;\n"
    result += "\tobjects = {\n"
    result += format_objects(project)
    result += "\t};\n"
    result += f"\trootObject = {format_value(project.project.ref(), 1)};\n"
    result += "}\n"
    return result


def serialized_fields(obj: XcodeObject) -> Dict[str, FormattableValue]:
    """
    Collect the fields of an object that belong in the project file.

    Identifiers, internal bookkeeping fields and None values are left out.
    """
    props: Dict[str, FormattableValue] = {"isa": obj.__class__}
    for field in dataclasses.fields(obj):
        if field.name == "id" or not field.metadata.get("serialize", True):
            continue
        value = getattr(obj, field.name)
        if value is None:
            continue
        props[field.name] = value
    return props


def format_objects(project: XcodeProject) -> str:
    sections: Dict[str, List[XcodeObject]] = defaultdict(list)
    for obj in project.objects.values():
        sections[obj.__class__.__name__].append(obj)

    result = ""
    for isa in sorted(sections):
        result += f"\n/* Begin {isa} section */\n"
        for obj in sorted(sections[isa], key=lambda o: o.id):
            formatted = format_dict(serialized_fields(obj), 2)
            result += f"\t\t{format_value(obj, 2)} = {formatted};\n"
        result += f"/* End {isa} section */\n"
    return result


def format_value(value: FormattableValue, indent_level: int) -> str:
    """
    Format a value based on its type.

    Args:
        value: The value to format.
        indent_level: The current indentation level.

    Returns:
        A string representing the formatted value.
    """
    # Handle None
    if value is None:
        return "(null)"

    # Handle XcodeID - should not be quoted
    elif isinstance(value, XcodeID):
        return value

    # Handle type objects - use class name without quotes
    elif isinstance(value, type):
        return value.__name__

    # Handle XcodeObject instances
    elif isinstance(value, XcodeObject):
        return format_value(value.ref(), indent_level)

    # Handle Reference objects
    elif isinstance(value, Reference):
        if value.comment:
            return f"{value.id} /* {value.comment} */"
        return value.id

    # Handle Enum values directly based on their type
    elif isinstance(value, enum.Enum):
        return format_enum(value)

    # Handle lists
    elif isinstance(value, list):
        return format_list(value, indent_level)

    # Handle dictionaries
    elif isinstance(value, dict):
        return format_dict(value, indent_level)

    # Handle basic types
    elif isinstance(value, (int, float, bool)):
        # Xcode represents booleans as 0/1
        if isinstance(value, bool):
            return "1" if value else "0"
        return str(value)

    # Handle strings - always quoted, object IDs are handled as XcodeID above
    elif isinstance(value, str):
        return quote(value)

    else:
        raise TypeError(f"Unsupported type: {type(value).__name__} for value: {value}")


def quote(value: str) -> str:
    return '"' + "".join(_ESCAPES.get(c, c) for c in value) + '"'


def format_key(key: str) -> str:
    return key if _BARE_KEY.match(key) else quote(key)


def format_dict(value_dict: Dict[str, FormattableValue], indent_level: int) -> str:
    """
    Format a dictionary.

    Args:
        value_dict: The dictionary to format.
        indent_level: The current indentation level.

    Returns:
        A string representing the formatted dictionary.
    """
    indent = "\t" * indent_level
    inner_indent = "\t" * (indent_level + 1)

    # Empty dictionaries should have braces on separate lines for Xcode compatibility
    if not value_dict:
        return "{\n" + indent + "}"

    result = "{\n"

    # "isa" leads, remaining keys are sorted for consistent output
    keys = sorted(value_dict.keys(), key=lambda k: (k != "isa", k))
    for key in keys:
        value = value_dict[key]
        if value is None:
            continue
        formatted_value = format_value(value, indent_level + 1)
        result += f"{inner_indent}{format_key(key)} = {formatted_value};\n"

    result += f"{indent}}}"
    return result


def format_list(value_list: List[FormattableValue], indent_level: int) -> str:
    """
    Format a list.

    Args:
        value_list: The list to format.
        indent_level: The current indentation level.

    Returns:
        A string representing the formatted list.
    """
    if not value_list:
        return "(\n" + "\t" * indent_level + ")"

    indent = "\t" * indent_level
    inner_indent = "\t" * (indent_level + 1)

    result = "(\n"
    for item in value_list:
        result += f"{inner_indent}{format_value(item, indent_level + 1)},\n"
    result += f"{indent})"
    return result


def format_enum(value_enum: enum.Enum) -> str:
    if isinstance(value_enum.value, str):
        return quote(value_enum.value)
    return str(value_enum.value)
