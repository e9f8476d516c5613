from __future__ import annotations

import re


_LEADING_ORDER = re.compile(r"^(\d+)-")


def strip_markdown_ext(name: str) -> str:
    return name[: -len(".md")] if name.endswith(".md") else name


def base_name(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def title_from_slug(path: str) -> str:
    """Display title from a file path: ``01-html-basics.md`` -> ``01 Html Basics``."""
    stem = strip_markdown_ext(base_name(path))
    return " ".join(w[:1].upper() + w[1:] for w in stem.split("-"))


def leading_order(path: str) -> int | None:
    """Number in a leading ``NN-`` prefix of the file name, if any."""
    m = _LEADING_ORDER.match(base_name(path))
    return int(m.group(1)) if m else None
