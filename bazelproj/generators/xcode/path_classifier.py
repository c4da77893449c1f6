import os
import posixpath
from typing import Optional, Tuple

from bazelproj.generators.xcode.model import SourceTree


def _normalize(path: str) -> str:
    return posixpath.normpath(posixpath.join(os.getcwd(), path))


# Decide how the project's main group reaches the workspace from the directory
# holding the generated project.
def main_group_for_output_folder(
    output_root: str, workspace_root: str
) -> Tuple[SourceTree, Optional[str]]:
    output = _normalize(output_root)
    workspace = _normalize(workspace_root)
    if output == workspace:
        return SourceTree.SOURCE_ROOT, None
    relative = posixpath.relpath(workspace, output)
    parts = relative.split("/")
    if ".." not in parts:
        # Workspace lives below the output folder
        return SourceTree.SOURCE_ROOT, relative
    if all(part == ".." for part in parts):
        # Output folder lives below the workspace
        return SourceTree.SOURCE_ROOT, relative
    return SourceTree.ABSOLUTE, workspace
