from __future__ import annotations

import re
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

MAX_GROUPS = 6
MAX_CODE_LENGTH = 32
DEFAULT_GROUP_SIZE = 8
DEFAULT_SEPARATOR = "-"

_PREFIX_STRIP_RE = re.compile(r"[^A-Za-z0-9_-]")
_SEPARATOR_RE = re.compile(r"^[A-Za-z0-9._:-]$")


class CodePattern(str, Enum):
    READABLE = "readable"
    ALNUM = "alnum"
    ALNUM_NO_VOWELS = "alnum_no_vowels"
    HEX = "hex"
    NUMERIC = "numeric"

    @classmethod
    def parse(cls, value: str | CodePattern | None) -> CodePattern:
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.READABLE


CHARSETS: dict[CodePattern, str] = {
    # no 0/O or 1/I/L
    CodePattern.READABLE: "ABCDEFGHJKMNPQRSTUVWXYZ23456789",
    CodePattern.ALNUM: "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789",
    CodePattern.ALNUM_NO_VOWELS: "BCDFGHJKLMNPQRSTVWXYZ0123456789",
    CodePattern.HEX: "0123456789ABCDEF",
    CodePattern.NUMERIC: "0123456789",
}


def charset_for(pattern: str | CodePattern | None) -> str:
    return CHARSETS[CodePattern.parse(pattern)]


def sanitize_prefix(raw: str | None) -> str:
    return _PREFIX_STRIP_RE.sub("", raw or "").upper()


def normalize_separator(raw: str | None) -> str:
    candidate = (raw or "")[:1]
    if _SEPARATOR_RE.match(candidate):
        return candidate
    return DEFAULT_SEPARATOR


def normalize_group_sizes(sizes: Iterable[int | None] | None) -> list[int]:
    """Reduce raw group sizes to the layout used for generation.

    Only the first six entries are read, empty/zero/negative groups are
    dropped and an empty layout becomes a single group of eight. When the
    total exceeds 32 the groups are cut left to right: the group crossing
    the cap is shortened and everything after it is dropped.
    """
    groups = []
    for size in list(sizes or [])[:MAX_GROUPS]:
        value = int(size or 0)
        if value > 0:
            groups.append(value)
    if not groups:
        return [DEFAULT_GROUP_SIZE]
    if sum(groups) <= MAX_CODE_LENGTH:
        return groups

    trimmed: list[int] = []
    running = 0
    for size in groups:
        size = min(size, MAX_CODE_LENGTH - running)
        if size > 0:
            trimmed.append(size)
            running += size
        if running >= MAX_CODE_LENGTH:
            break
    return trimmed


@dataclass(frozen=True)
class GenerationConfig:
    prefix: str = ""
    pattern: CodePattern = CodePattern.READABLE
    group_sizes: tuple[int, ...] = field(default=(DEFAULT_GROUP_SIZE,))
    separator: str = DEFAULT_SEPARATOR

    @classmethod
    def build(
        cls,
        *,
        prefix: str | None = None,
        pattern: str | CodePattern | None = None,
        group_sizes: Iterable[int | None] | None = None,
        separator: str | None = None,
    ) -> GenerationConfig:
        return cls(
            prefix=sanitize_prefix(prefix),
            pattern=CodePattern.parse(pattern),
            group_sizes=tuple(normalize_group_sizes(group_sizes)),
            separator=normalize_separator(separator),
        )

    @property
    def code_length(self) -> int:
        return len(self.prefix) + sum(self.group_sizes) + max(len(self.group_sizes) - 1, 0)


def _draw(chars: str, length: int) -> str:
    return "".join(secrets.choice(chars) for _ in range(length))


def generate_code(config: GenerationConfig) -> str:
    chars = CHARSETS[config.pattern]
    groups = [_draw(chars, size) for size in config.group_sizes if size > 0]
    return sanitize_prefix(config.prefix) + normalize_separator(config.separator).join(groups)


def generate_code_from(
    prefix: str | None = "",
    pattern: str | CodePattern | None = CodePattern.READABLE,
    group_sizes: Iterable[int | None] | None = (DEFAULT_GROUP_SIZE,),
    separator: str | None = DEFAULT_SEPARATOR,
) -> str:
    config = GenerationConfig.build(
        prefix=prefix, pattern=pattern, group_sizes=group_sizes, separator=separator
    )
    return generate_code(config)
