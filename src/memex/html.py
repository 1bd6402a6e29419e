"""HTML parsing utilities."""

import re
from html.parser import HTMLParser
from typing import Any, Dict, List, Optional, Tuple

_IGNORED_TAGS = frozenset({"script", "style", "noscript", "template", "svg", "form"})
_BOILERPLATE_TAGS = frozenset({"nav", "footer", "header", "aside"})
_CONTAINER_TAGS = frozenset({"body", "article", "main", "section", "div"})
_PARAGRAPH_TAGS = frozenset(
    {"p", "pre", "blockquote", "li", "td", "h1", "h2", "h3", "h4", "h5", "h6"}
)
_VOID_TAGS = frozenset(
    {"br", "img", "hr", "meta", "link", "input", "source", "wbr", "area", "col"}
)
_WHITESPACE_PATTERN = re.compile(r"\s+")
GRANDPARENT_SCORE_WEIGHT = 0.5


class HTMLStripper(HTMLParser):
    """Parse HTML into scored text paragraphs, skipping page chrome.

    Every paragraph credits its full length to the nearest enclosing container
    and half of it to the next one up, so the container holding the main
    article accumulates the highest score.
    """

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.title = ""
        self.text: List[str] = []
        self.paragraphs: List[Tuple[str, Tuple[int, ...]]] = []
        self.scores: Dict[int, float] = {}
        self._in_title = False
        self._ignore_depth = 0
        self._boilerplate_depth = 0
        self._containers: List[Tuple[str, int]] = []
        self._next_container_id = 0
        self._buffer: List[str] = []

    def handle_starttag(self, tag: str, attrs: List[Any]) -> None:
        tag = tag.lower()
        if tag in _VOID_TAGS:
            return
        if tag == "title":
            self._in_title = True
            return
        if tag in _IGNORED_TAGS:
            self._ignore_depth += 1
            return
        if tag in _BOILERPLATE_TAGS:
            self._boilerplate_depth += 1
            return
        if tag in _CONTAINER_TAGS:
            self._flush()
            self._containers.append((tag, self._next_container_id))
            self._next_container_id += 1
        elif tag in _PARAGRAPH_TAGS:
            self._flush()

    def handle_endtag(self, tag: str) -> None:
        tag = tag.lower()
        if tag == "title":
            self._in_title = False
        elif tag in _IGNORED_TAGS:
            if self._ignore_depth > 0:
                self._ignore_depth -= 1
        elif tag in _BOILERPLATE_TAGS:
            if self._boilerplate_depth > 0:
                self._boilerplate_depth -= 1
        elif tag in _CONTAINER_TAGS:
            self._flush()
            for position in range(len(self._containers) - 1, -1, -1):
                if self._containers[position][0] == tag:
                    del self._containers[position:]
                    break
        elif tag in _PARAGRAPH_TAGS:
            self._flush()

    def handle_data(self, data: str) -> None:
        if self._in_title:
            self.title += data
            return
        if self._ignore_depth or self._boilerplate_depth:
            return
        if data.strip():
            self.text.append(data)
            self._buffer.append(data)

    def close(self) -> None:
        super().close()
        self._flush()

    def _flush(self) -> None:
        paragraph = _WHITESPACE_PATTERN.sub(" ", "".join(self._buffer)).strip()
        self._buffer = []
        if not paragraph:
            return
        lineage = tuple(container_id for _, container_id in self._containers[-2:])
        self.paragraphs.append((paragraph, lineage))
        if not lineage:
            return
        parent = lineage[-1]
        self.scores[parent] = self.scores.get(parent, 0.0) + len(paragraph)
        if len(lineage) > 1:
            grandparent = lineage[0]
            self.scores[grandparent] = (
                self.scores.get(grandparent, 0.0)
                + len(paragraph) * GRANDPARENT_SCORE_WEIGHT
            )

    def get_data(self) -> str:
        return "".join(self.text).strip()

    def get_main_text(self) -> str:
        """Return the paragraphs belonging to the highest-scoring container."""
        if not self.scores:
            return "\n\n".join(text for text, _ in self.paragraphs)
        best = max(self.scores.items(), key=lambda item: (item[1], -item[0]))[0]
        return "\n\n".join(
            text for text, lineage in self.paragraphs if best in lineage
        )


def parse_html(html: str) -> HTMLStripper:
    stripper = HTMLStripper()
    stripper.feed(html or "")
    stripper.close()
    return stripper


def strip_tags(html: str) -> str:
    """Strip HTML tags from text and return plain text content."""
    return parse_html(html).get_data()


def extract_main_text(html: str) -> Dict[str, Optional[str]]:
    """Fallback article extraction: the largest coherent text block wins."""
    stripper = parse_html(html)
    return {
        "title": _WHITESPACE_PATTERN.sub(" ", stripper.title).strip(),
        "content": stripper.get_main_text().strip(),
    }


def strip_think_tags(text: str) -> str:
    """Remove <think>...</think> blocks from LLM output."""
    if not text:
        return ""
    return re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL).strip()
