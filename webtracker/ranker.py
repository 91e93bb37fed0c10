"""Find page elements containing a target text and score them."""

import logging
import re
from dataclasses import dataclass

from bs4 import BeautifulSoup, Comment, Doctype, Tag
from rapidfuzz.distance import Levenshtein

from webtracker.models import ElementMatch

logger = logging.getLogger(__name__)

SKIPPED_TAGS = ("script", "style", "noscript", "template")
SEMANTIC_TAGS = ("span", "div", "p", "strong", "em")
VALUE_HINTS = ("price", "cost", "amount")
VALUE_DATA_ATTRS = ("data-price", "data-value")

CONTEXT_LIMIT = 500
TAG_RE = re.compile(r"<[^>]+>")
WS_RE = re.compile(r"\s+")


@dataclass
class RankingWeights:
    exact_match_bonus: float = 50
    similarity: float = 30
    proximity: float = 0.3
    context: float = 0.2
    position: float = 0.1


class ElementRanker:
    """
    Scores every element whose text contains the target.

    confidence = exact-match bonus + similarity + proximity + context quality
    + structure bonus - position penalty, clamped to [0, 100]. Ties keep
    document order.
    """

    def __init__(self, weights: RankingWeights | None = None):
        self.weights = weights or RankingWeights()

    def find_and_rank(self, html: str, target: str) -> list[ElementMatch]:
        needle = normalize_text(target)
        if not needle:
            return []

        soup = BeautifulSoup(html, "html.parser")
        root = soup.body or soup
        matches = []
        for node in root.find_all(string=True):
            if isinstance(node, (Comment, Doctype)):
                continue
            element = node.parent
            if not isinstance(element, Tag) or isinstance(element, BeautifulSoup):
                continue
            if element.name in SKIPPED_TAGS:
                continue
            if needle not in normalize_text(str(node)):
                continue
            match = ElementMatch(
                selector=generate_selector(element),
                text=str(node).strip(),
                html=str(element),
                context=_context(element),
            )
            match.confidence = self.score(match, needle, position=len(matches))
            matches.append(match)

        matches.sort(key=lambda m: m.confidence, reverse=True)
        logger.info("Found %d matches for %r", len(matches), target)
        return matches

    def score(self, match: ElementMatch, target: str, position: int) -> float:
        w = self.weights
        text = normalize_text(match.text)
        search = normalize_text(target)

        confidence = 0.0
        if text == search:
            confidence += w.exact_match_bonus
        confidence += Levenshtein.normalized_similarity(text, search) * w.similarity
        confidence += proximity(text, search) * w.proximity * 20
        confidence += context_quality(match.context) * w.context * 10
        confidence -= position * w.position * 5
        confidence += structure_bonus(match.html)
        return max(0.0, min(100.0, confidence))


def normalize_text(text: str) -> str:
    return WS_RE.sub(" ", text or "").strip().lower()


def proximity(text: str, search: str) -> float:
    """1.0 at the start, 0.8 on whole-word boundaries, 0.5 elsewhere, 0 if absent."""
    index = text.find(search)
    if index == -1:
        return 0.0
    if index == 0:
        return 1.0
    before = text[index - 1]
    end = index + len(search)
    after = text[end] if end < len(text) else ""
    if before.isspace() and (not after or after.isspace()):
        return 0.8
    return 0.5


def context_quality(context: str) -> float:
    quality = 0.5
    quality += max(0.0, 1 - len(TAG_RE.findall(context)) / 20)
    if len(context) > 1000:
        quality -= 0.3
    return max(0.0, min(1.0, quality))


def structure_bonus(html: str) -> float:
    bonus = 0.0
    if any(f"<{tag}" in html for tag in SEMANTIC_TAGS):
        bonus += 2
    if any(hint in html for hint in VALUE_HINTS):
        bonus += 5
    if any(attr in html for attr in VALUE_DATA_ATTRS):
        bonus += 10
    return bonus


def generate_selector(element: Tag) -> str:
    """
    CSS selector for ``element``: its id, then its class list, then a parent path.

    An id or class selector is only used when it matches nothing else in the
    document; otherwise the path is built from the nearest uniquely named
    ancestor with ``:nth-of-type`` steps.
    """
    root = _root(element)
    element_id = element.get("id")
    if element_id:
        selector = "#" + element.css.escape(element_id)
        if _is_unique(root, selector):
            return selector

    classes = [c for c in element.get("class") or [] if c.strip()]
    if classes:
        selector = "." + ".".join(element.css.escape(c) for c in classes)
        if _is_unique(root, selector):
            return selector

    parent = element.parent
    if not isinstance(parent, Tag):
        return element.name

    siblings = parent.find_all(element.name, recursive=False)
    step = element.name
    if len(siblings) > 1:
        index = next(i for i, sibling in enumerate(siblings, start=1) if sibling is element)
        step = f"{element.name}:nth-of-type({index})"
    if isinstance(parent, BeautifulSoup):
        return step
    return f"{generate_selector(parent)} > {step}"


def _root(element: Tag) -> Tag:
    parents = list(element.parents)
    return parents[-1] if parents else element


def _is_unique(root: Tag, selector: str) -> bool:
    return len(root.select(selector, limit=2)) == 1


def _context(element: Tag) -> str:
    parent = element.parent
    if isinstance(parent, Tag) and not isinstance(parent, BeautifulSoup):
        context = parent.decode_contents()
    else:
        context = element.decode_contents()
    if len(context) > CONTEXT_LIMIT:
        return context[:CONTEXT_LIMIT] + "..."
    return context
