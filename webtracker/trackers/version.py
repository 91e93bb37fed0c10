"""Semantic version tracker (1.20.1, 2.0.0-beta.1, v3.1)."""

import re
from dataclasses import dataclass

from webtracker.models import ChangeType, ElementMatch, ValueKind
from webtracker.trackers.base import (
    CompareResult,
    ConfigField,
    ParseResult,
    ValuePlugin,
    clamp_confidence,
    has_keyword,
)

_IDENT = r"[0-9A-Za-z][0-9A-Za-z.-]*"

# (pattern, number of numeric components it captures); most specific first.
VERSION_PATTERNS = [
    (re.compile(r"[vV]?(\d+)\.(\d+)\.(\d+)(?:-(" + _IDENT + r"))?(?:\+(" + _IDENT + r"))?"), 3),
    (re.compile(r"[vV]?(\d+)\.(\d+)"), 2),
    (re.compile(r"[vV]?(\d+)"), 1),
]

VERSION_CONTEXT = r"version|release|tag|build"
VERSION_MARKUP = r"version|release|tag|build|update"
FORGE_MARKUP = r"github|gitlab|release|tag"

NOTIFICATION_LEVELS = ("major", "minor", "patch")
# Longer runs of digits are ids or hashes, not version components.
MAX_COMPONENT_DIGITS = 9


@dataclass(frozen=True)
class Version:
    major: int
    minor: int = 0
    patch: int = 0
    prerelease: str | None = None
    build: str | None = None

    def sort_key(self) -> tuple:
        # a release ranks above any of its prereleases
        return (
            self.major,
            self.minor,
            self.patch,
            0 if self.prerelease else 1,
            self.prerelease or "",
        )

    def weight(self) -> int:
        return self.major * 10000 + self.minor * 100 + self.patch


class VersionTracker(ValuePlugin[Version]):
    """Track software versions; higher is better."""

    kind = ValueKind.VERSION
    name = "Version Tracker"
    description = "Track semantic versions (e.g., 1.20.1, 2.0.0-beta)"

    def parse(self, text: str) -> ParseResult[Version]:
        if not text or not text.strip():
            return ParseResult.failed(text or "")
        cleaned = text.strip()

        for pattern, components in VERSION_PATTERNS:
            match = pattern.search(cleaned)
            if not match:
                continue
            groups = match.groups()
            prerelease = build = None
            if components == 3:
                prerelease = _strip_ident(groups[3])
                build = _strip_ident(groups[4])
            if any(len(g) > MAX_COMPONENT_DIGITS for g in groups[:components]):
                return ParseResult.failed(text)
            version = Version(
                major=int(groups[0]),
                minor=int(groups[1]) if components >= 2 else 0,
                patch=int(groups[2]) if components >= 3 else 0,
                prerelease=prerelease,
                build=build,
            )
            return ParseResult(
                success=True,
                value=version,
                normalized=self.format(version),
                confidence=self._confidence(cleaned, match.group(0), version, components),
                metadata={
                    "components": components,
                    "has_prerelease": bool(prerelease),
                    "has_build": bool(build),
                    "original_format": match.group(0),
                },
            )

        return ParseResult.failed(text)

    def format(self, value: Version | None) -> str:
        if value is None:
            return ""
        formatted = f"{value.major}.{value.minor}.{value.patch}"
        if value.prerelease:
            formatted += f"-{value.prerelease}"
        if value.build:
            formatted += f"+{value.build}"
        return formatted

    def compare(self, old: Version | None, new: Version | None) -> CompareResult:
        if old is None or new is None:
            return CompareResult.unchanged()

        old_key, new_key = old.sort_key(), new.sort_key()
        if old_key == new_key:
            return CompareResult.unchanged(percent_change=0.0)

        difference = 1
        for old_part, new_part in zip(old_key[:3], new_key[:3]):
            if old_part != new_part:
                difference = abs(new_part - old_part)
                break

        return CompareResult(
            changed=True,
            change_type=ChangeType.INCREASED if new_key > old_key else ChangeType.DECREASED,
            difference=difference,
            percent_change=_change_percentage(old, new),
        )

    def get_search_variations(self, text: str) -> list[str]:
        variations = [text]
        parsed = self.parse(text)
        if parsed.success:
            v = parsed.value
            raw = parsed.metadata["original_format"]
            bare = raw.lstrip("vV")
            variations += [
                f"v{v.major}.{v.minor}.{v.patch}",
                f"{v.major}.{v.minor}.{v.patch}",
                f"{v.major}.{v.minor}",
                f"{v.major}",
                f"v{bare}",
                bare,
            ]
            if v.prerelease:
                variations.append(f"{v.major}.{v.minor}.{v.patch}-{v.prerelease}")
        return list(dict.fromkeys(variations))

    def context_bonus(self, target: ParseResult[Version], match: ElementMatch, parsed: ParseResult[Version]) -> float:
        bonus = 0.0
        if has_keyword(VERSION_MARKUP, match.html):
            bonus += 15
        if has_keyword(FORGE_MARKUP, match.html):
            bonus += 10
        if parsed.success and parsed.metadata.get("components", 0) >= 2:
            bonus += 20
            if target.success and target.value.sort_key() == parsed.value.sort_key():
                bonus += 25
        return bonus

    def dump(self, value: Version) -> dict:
        return {
            "major": value.major,
            "minor": value.minor,
            "patch": value.patch,
            "prerelease": value.prerelease,
            "build": value.build,
        }

    def load(self, data: dict | None) -> Version | None:
        if not isinstance(data, dict):
            return None
        parts = [data.get("major"), data.get("minor", 0), data.get("patch", 0)]
        if any(isinstance(p, bool) or not isinstance(p, int) for p in parts):
            return None
        prerelease = data.get("prerelease") or None
        build = data.get("build") or None
        if not all(x is None or isinstance(x, str) for x in (prerelease, build)):
            return None
        return Version(parts[0], parts[1], parts[2], prerelease, build)

    def scalar(self, value: Version) -> float | None:
        return float(value.weight())

    def config_fields(self) -> list[ConfigField]:
        return [
            ConfigField(
                "notification_level",
                "select",
                "Notify On",
                default="minor",
                options=[
                    ("major", "Major versions only (1.x.x → 2.x.x)"),
                    ("minor", "Minor versions and above (x.1.x → x.2.x)"),
                    ("patch", "All version changes"),
                ],
            ),
        ]

    def validate_config(self, config: dict | None) -> bool:
        if not config:
            return True
        level = config.get("notification_level")
        return level is None or level in NOTIFICATION_LEVELS

    def _confidence(self, text: str, raw: str, version: Version, components: int) -> int:
        confidence = 60
        if components == 3:
            confidence += 15
        elif components == 1:
            confidence -= 20
        if raw[:1] in ("v", "V"):
            confidence += 10
        if version.prerelease:
            confidence += 5
        if version.major > 100:
            confidence -= 15
        if has_keyword(VERSION_CONTEXT, text):
            confidence += 10
        return clamp_confidence(confidence)


def _strip_ident(ident: str | None) -> str | None:
    if not ident:
        return None
    return ident.rstrip(".-") or None


def _change_percentage(old: Version, new: Version) -> float:
    old_weight, new_weight = old.weight(), new.weight()
    if old_weight == 0:
        return 100.0
    return abs((new_weight - old_weight) / old_weight) * 100
