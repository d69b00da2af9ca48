"""Ordered heuristic rules used to infer guide titles, metadata and tags.

Each rule table is evaluated in order and, where a single answer is wanted,
the first rule that produces a value wins. Keeping the rules as data lets
every rule be tested on its own.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Pattern, Sequence

METADATA_SCAN_LENGTH = 8000
PLATFORM_SCAN_LENGTH = 1000
TITLE_SCAN_LINES = 30
EARLY_TITLE_LINES = 10
ASCII_ART_SCAN_LINES = 100
ASCII_ART_MIN_LINES = 6

DECORATOR_LINE = re.compile(r"^[=\-*_#]+$")
TITLE_KEYWORD = re.compile(r"(guide|walkthrough|faq)", re.IGNORECASE)

TRAILING_VERSION = re.compile(r"\s+v?\d+\.\d+(\.\d+)?\s*$", re.IGNORECASE)
TRAILING_AUTHOR = re.compile(r"\s+by\s+.+$", re.IGNORECASE)
DECORATOR_RUN = re.compile(r"[*_=\-]{3,}")
WHITESPACE_RUN = re.compile(r"\s+")

FILENAME_GAME_ID = re.compile(r"^(\d+)-(.+)$")
FILENAME_SUFFIX = re.compile(r"-(faqs?|guides?|walkthroughs?|maps?|cheats?)-?\d*$", re.IGNORECASE)
FILENAME_STOP_WORDS = {"faqs", "guides", "walkthrough", "walkthroughs", "maps", "cheats"}
TITLE_SMALL_WORDS = {"of", "the", "and", "a", "an", "in", "on", "at", "to", "for"}

# Longer names first so "Xbox 360" is not reported as "Xbox"
PLATFORMS = [
    "Xbox 360",
    "Xbox One",
    "Game Boy",
    "GameCube",
    "Dreamcast",
    "Genesis",
    "Saturn",
    "Switch",
    "Steam",
    "Xbox",
    "SNES",
    "Vita",
    "NES",
    "N64",
    "Wii",
    "PS1",
    "PS2",
    "PS3",
    "PS4",
    "PS5",
    "PSP",
    "GBA",
    "3DS",
    "DS",
    "PC",
]

PLATFORM_DIRECTORIES = {
    "nes": "NES",
    "snes": "SNES",
    "n64": "N64",
    "gamecube": "GameCube",
    "wii": "Wii",
    "switch": "Switch",
    "genesis": "Genesis",
    "saturn": "Saturn",
    "dreamcast": "Dreamcast",
    "ps1": "PS1",
    "ps2": "PS2",
    "ps3": "PS3",
    "ps4": "PS4",
    "ps5": "PS5",
    "psp": "PSP",
    "vita": "Vita",
    "xbox": "Xbox",
    "xbox360": "Xbox 360",
    "xboxone": "Xbox One",
    "gameboy": "Game Boy",
    "gba": "GBA",
    "gbc": "GBC",
    "ds": "DS",
    "3ds": "3DS",
    "pc": "PC",
    "sms": "SMS",
    "x1": "X1",
    "3rd": "3DO",
}


# -----------------------------------------------------------------------------
# Titles
# -----------------------------------------------------------------------------


def clean_title(title: str) -> str:
    """Strip trailing version/author suffixes and decorator runs from a title line."""
    cleaned = TRAILING_VERSION.sub("", title)
    cleaned = TRAILING_AUTHOR.sub("", cleaned)
    cleaned = DECORATOR_RUN.sub("", cleaned)
    return WHITESPACE_RUN.sub(" ", cleaned).strip()


def _is_title_candidate(line: str) -> bool:
    return not (
        DECORATOR_LINE.match(line)
        or len(line) > 120
        or len(line) < 3
        or line.startswith("http")
    )


def keyword_or_indented_title(raw_lines: Sequence[str]) -> Optional[str]:
    """First of the leading non-blank lines naming a guide/FAQ, or indented like a banner."""
    candidates = [line for line in raw_lines if line.strip()][:TITLE_SCAN_LINES]

    for raw in candidates:
        line = raw.strip()
        if not _is_title_candidate(line):
            continue

        if TITLE_KEYWORD.search(line):
            return clean_title(line)

        indent = len(raw) - len(raw.lstrip())
        if indent > 10 and 5 < len(line) < 80:
            return clean_title(line)

    return None


def early_plain_title(raw_lines: Sequence[str]) -> Optional[str]:
    """First reasonably sized line among the leading non-blank lines."""
    lines = [line.strip() for line in raw_lines if line.strip()][:EARLY_TITLE_LINES]

    for line in lines:
        if 10 <= len(line) < 100 and not line.startswith("http") and not DECORATOR_LINE.match(line):
            return clean_title(line)

    return None


@dataclass(frozen=True)
class TitleRule:
    """A named title heuristic over the raw lines of a guide."""

    name: str
    apply: Callable[[Sequence[str]], Optional[str]]


TITLE_RULES: List[TitleRule] = [
    TitleRule("keyword_or_indented_line", keyword_or_indented_title),
    TitleRule("early_plain_line", early_plain_title),
]


def infer_title(content: str) -> Optional[str]:
    """Apply TITLE_RULES in order; the first non-empty answer wins."""
    raw_lines = content.split("\n")
    for rule in TITLE_RULES:
        title = rule.apply(raw_lines)
        if title:
            return title
    return None


def title_from_filename(file_path: str) -> str:
    """Derive a title-cased name from a guide's filename.

    Examples:
        "12345-super-mario-bros-faqs-2.txt" -> "Super Mario Bros"
        "legend_of_zelda.txt" -> "Legend of Zelda"
    """
    stem = Path(file_path).stem

    cleaned = re.sub(r"^\d+-", "", stem)
    cleaned = FILENAME_SUFFIX.sub("", cleaned)
    cleaned = re.sub(r"[_-]", " ", cleaned)
    cleaned = WHITESPACE_RUN.sub(" ", cleaned).strip()

    words = []
    for index, word in enumerate(cleaned.split(" ")):
        lower = word.lower()
        if index > 0 and lower in TITLE_SMALL_WORDS:
            words.append(lower)
        else:
            words.append(lower[:1].upper() + lower[1:])
    return " ".join(words)


# -----------------------------------------------------------------------------
# Metadata
# -----------------------------------------------------------------------------

AUTHOR_RULES: List[Pattern] = [
    re.compile(r"\b(?:by|author|written by|created by)[:\s]+([^\n]+)", re.IGNORECASE),
    re.compile(r"^([A-Z][a-z]+ [A-Z][a-z]+)\s*$", re.MULTILINE),
]

VERSION_RULES: List[Pattern] = [
    re.compile(r"version[:\s]+([0-9.]+)", re.IGNORECASE),
    re.compile(r"\bv(\d+(?:\.\d+)+)\b", re.IGNORECASE),
]

PLATFORM_PATTERNS = [
    (platform, re.compile(rf"\b{re.escape(platform)}\b", re.IGNORECASE)) for platform in PLATFORMS
]


def _first_group(rules: Sequence[Pattern], text: str) -> Optional[str]:
    for pattern in rules:
        match = pattern.search(text)
        if match:
            value = match.group(1).strip().rstrip(".")
            if value:
                return value
    return None


def extract_metadata(content: str) -> Dict[str, str]:
    """Extract author, version and platform from the head of a guide.

    Args:
        content: Guide text (only the first METADATA_SCAN_LENGTH chars are read)

    Returns:
        Dictionary with any of author, version, platform
    """
    window = content[:METADATA_SCAN_LENGTH]
    metadata = {}

    author = _first_group(AUTHOR_RULES, window)
    if author:
        metadata["author"] = author

    version = _first_group(VERSION_RULES, window)
    if version:
        metadata["version"] = version

    platform_window = window[:PLATFORM_SCAN_LENGTH]
    for platform, pattern in PLATFORM_PATTERNS:
        if pattern.search(platform_window):
            metadata["platform"] = platform
            break

    return metadata


# -----------------------------------------------------------------------------
# Tags
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class TagRule:
    """Adds ``tag`` when ``pattern`` matches the lower-cased filename or content window."""

    tag: str
    pattern: Pattern
    target: str = "content"


def _rule(tag: str, pattern: str, target: str = "content") -> TagRule:
    return TagRule(tag, re.compile(pattern), target)


TAG_RULES: List[TagRule] = [
    # Content type, from the filename
    _rule("FAQ", r"faq", "filename"),
    _rule("Walkthrough", r"walkthrough", "filename"),
    _rule("Guide", r"guide", "filename"),
    _rule("Maps", r"maps", "filename"),
    _rule("Cheats", r"cheats", "filename"),
    # Content type, from the text
    _rule("Walkthrough", r"walkthrough"),
    _rule("Achievements", r"achievement"),
    _rule("Trophies", r"trophy"),
    _rule("Secrets", r"secret"),
    _rule("Boss Guide", r"boss"),
    _rule("Characters", r"character"),
    _rule("Items", r"item list|items:"),
    _rule("Weapons", r"weapon"),
    _rule("Collectibles", r"collectible"),
    _rule("Unlockables", r"unlock"),
    # Genre
    _rule("RPG", r"rpg|role.playing"),
    _rule("FPS", r"fps|first.person.shooter"),
    _rule("Platformer", r"platformer|platform game"),
    _rule("Fighting", r"fighting game|fighter"),
    _rule("Racing", r"racing"),
    _rule("Puzzle", r"puzzle"),
    _rule("Strategy", r"strategy|rts|turn.based"),
    _rule("Adventure", r"adventure"),
    _rule("Action", r"action"),
    _rule("Simulation", r"simulation|sim"),
    _rule("Sports", r"sports"),
    # Difficulty / completeness
    _rule("Complete Guide", r"100%|complete"),
    _rule("Beginner Friendly", r"beginner"),
    _rule("Advanced", r"advanced|expert"),
    _rule("Speedrun", r"speedrun"),
    # Layout
    _rule("ASCII Art", r"ascii art"),
    _rule("Table of Contents", r"table of contents|toc"),
]

SYMBOL_CHAR = re.compile(r"[^\w\s]", re.ASCII)


def detect_ascii_art(content: str) -> bool:
    """True when enough of the first lines are dominated by symbol characters."""
    art_lines = 0
    for line in content.split("\n")[:ASCII_ART_SCAN_LINES]:
        symbols = len(SYMBOL_CHAR.findall(line))
        if symbols > len(line) * 0.3 and len(line) > 10:
            art_lines += 1
    return art_lines >= ASCII_ART_MIN_LINES


def generate_tags(content: str, filename: str) -> List[str]:
    """Generate tags for a guide from its filename and head of content.

    Args:
        content: Guide text (only the first METADATA_SCAN_LENGTH chars are read)
        filename: Base filename of the guide

    Returns:
        Tags in TAG_RULES order, without duplicates
    """
    sources = {
        "filename": filename.lower(),
        "content": content[:METADATA_SCAN_LENGTH].lower(),
    }

    tags: List[str] = []
    for rule in TAG_RULES:
        if rule.tag not in tags and rule.pattern.search(sources[rule.target]):
            tags.append(rule.tag)

    if "ASCII Art" not in tags and detect_ascii_art(content):
        tags.append("ASCII Art")

    return tags


# -----------------------------------------------------------------------------
# Game and platform from archive layout
# -----------------------------------------------------------------------------


def normalize_platform(dir_name: str) -> Optional[str]:
    """Map an archive platform directory (e.g. "xbox-360") to a display name."""
    key = re.sub(r"[^a-z0-9]", "", dir_name.lower())
    return PLATFORM_DIRECTORIES.get(key)


def capitalize_slug(words: Sequence[str]) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in words if word)


def game_info_from_filename(file_path: str) -> Dict[str, Optional[str]]:
    """Read a numeric game id prefix from the filename, e.g. "123-zelda-faqs.txt"."""
    stem = Path(file_path).stem
    match = FILENAME_GAME_ID.match(stem)

    if match:
        name_parts = []
        for part in match.group(2).split("-"):
            if part.lower() in FILENAME_STOP_WORDS:
                break
            name_parts.append(part)
        return {
            "game_id": match.group(1),
            "game_name": capitalize_slug(name_parts) or "Unknown Game",
        }

    return {"game_id": None, "game_name": title_from_filename(file_path)}
