"""
path_index.py
=============
Addressing for the live tree: turns a flat relative path from a watch
event into the folder node that must be mutated, walking one ``contents``
map per segment.
"""

from errors import MissingParent


def split_path(path: str) -> tuple[str, ...]:
    """``"docs/a.txt"`` -> ``("docs", "a.txt")``; the root ``""`` -> ``()``."""
    if not path:
        return ()
    return tuple(part for part in path.replace("\\", "/").split("/") if part and part != ".")


def join_path(parts) -> str:
    return "/".join(parts)


def is_hidden(path: str) -> bool:
    """True when any segment of ``path`` is a dot-entry."""
    return any(part.startswith(".") for part in split_path(path))


def locate_parent(root, parts: tuple[str, ...]):
    """Return the folder that holds ``parts[-1]``.

    Intermediate folders are never created here; a missing or non-folder
    segment raises ``MissingParent``.
    """
    node = root
    for depth, name in enumerate(parts[:-1]):
        child = node.contents.get(name)
        if getattr(child, "contents", None) is None:
            raise MissingParent(join_path(parts), join_path(parts[:depth + 1]))
        node = child
    return node


def locate(root, parts: tuple[str, ...]):
    """Node at ``parts``, or None if any segment is absent."""
    node = root
    for name in parts:
        contents = getattr(node, "contents", None)
        if contents is None or name not in contents:
            return None
        node = contents[name]
    return node
