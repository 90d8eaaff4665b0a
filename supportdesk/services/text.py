from __future__ import annotations

import re
import time
import unicodedata
from collections.abc import Iterable

_SLUG_RE = re.compile(r"[^a-z0-9]+")
_SPACE_RE = re.compile(r"\s+")


def _fold(text: str) -> str:
    clean = unicodedata.normalize("NFD", (text or "").lower())
    return "".join(ch for ch in clean if unicodedata.category(ch) != "Mn")


def slugify(title: str, *, stamp: int | None = None) -> str:
    base = _SLUG_RE.sub("-", _fold(title)).strip("-")[:280] or "article"
    if stamp is None:
        stamp = int(time.time() * 1000)
    return f"{base}-{stamp}"


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    out: list[str] = []
    for raw in tags or []:
        tag = _SPACE_RE.sub(" ", str(raw or "")).strip().lower()[:64]
        if tag and tag not in out:
            out.append(tag)
    return out


def contains_text(needle: str, *haystacks: str | None) -> bool:
    key = _fold(needle).strip()
    if not key:
        return True
    return any(key in _fold(x or "") for x in haystacks)
