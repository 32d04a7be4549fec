"""Loading tree-sitter grammars from their ``tree_sitter_<name>`` provider packages."""

from __future__ import annotations

import functools
import importlib
import logging

from tree_sitter import Language, Parser

logger = logging.getLogger(__name__)

# Grammar packages whose module name differs from the language name.
PROVIDER_MODULES = {
    "c++": "tree_sitter_cpp",
    "c#": "tree_sitter_c_sharp",
    "csharp": "tree_sitter_c_sharp",
    "js": "tree_sitter_javascript",
    "py": "tree_sitter_python",
}

# Provider modules exposing several grammars under specific entry points.
LANGUAGE_FUNCTIONS = {
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
    "php": ("tree_sitter_php", "language_php"),
}


class LanguageNotFound(LookupError):
    """No installed provider package supplies the requested grammar."""


@functools.lru_cache(maxsize=None)
def load_language(name: str) -> Language:
    """Return the tree-sitter :class:`Language` called *name*.

    Raises :class:`LanguageNotFound` if its provider package is missing.
    """
    key = name.lower()
    module_name, entry = LANGUAGE_FUNCTIONS.get(
        key, (PROVIDER_MODULES.get(key, "tree_sitter_" + key.replace("-", "_")), "language")
    )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise LanguageNotFound(
            f"No grammar for {name!r}: install the {module_name.replace('_', '-')} package"
        ) from exc
    capsule = getattr(module, entry, None)
    if capsule is None:
        raise LanguageNotFound(f"{module_name} has no {entry}() entry point")
    logger.debug("Loaded grammar %s from %s.%s", name, module_name, entry)
    return Language(capsule())


def make_parser(name: str) -> Parser:
    """A fresh parser for language *name*; parsers are not shared between threads."""
    return Parser(load_language(name))


__all__ = ["LanguageNotFound", "load_language", "make_parser"]
