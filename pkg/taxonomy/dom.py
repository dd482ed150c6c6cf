"""
Minimal document model for server-rendered pages.

Covers just what the status filter engine touches in a browser: class lists,
data-* attributes, the inline display style, click listeners, and the
loading → interactive lifecycle with its "DOMContentLoaded" signal.
"""
import re
from html.parser import HTMLParser
from typing import Callable, Dict, Iterator, List, Optional

VOID_ELEMENTS = {
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "source", "track", "wbr",
}

CONTENT_LOADED = "DOMContentLoaded"

_DISPLAY_RE = re.compile(r"(?:^|;)\s*display\s*:\s*([^;]*)", re.IGNORECASE)


class ClassList:
    """Ordered class names of one element (mirrors DOMTokenList)."""

    def __init__(self, value: str = ""):
        self._names: List[str] = []
        self.add(*value.split())

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._names))

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: str) -> bool:
        return name in self._names

    def contains(self, name: str) -> bool:
        return name in self._names

    def add(self, *names: str):
        for name in names:
            if name and name not in self._names:
                self._names.append(name)

    def remove(self, *names: str):
        self._names = [n for n in self._names if n not in names]

    def __str__(self) -> str:
        return " ".join(self._names)


class Style:
    """Inline style; only ``display`` is tracked."""

    def __init__(self, text: str = ""):
        match = _DISPLAY_RE.search(text or "")
        self.display = match.group(1).strip() if match else ""


def _camel(name: str) -> str:
    head, *rest = name.split("-")
    return head + "".join(part.capitalize() for part in rest)


class Element:
    """One node of the document tree."""

    def __init__(self, tag: str, attrs: Optional[Dict[str, str]] = None,
                 parent: Optional["Element"] = None):
        self.tag = tag
        self.attrs: Dict[str, str] = dict(attrs or {})
        self.parent = parent
        self.children: List["Element"] = []
        self.text_parts: List[str] = []
        self.class_list = ClassList(self.attrs.get("class", ""))
        self.style = Style(self.attrs.get("style", ""))
        self._listeners: Dict[str, List[Callable]] = {}

    def __repr__(self) -> str:
        return f"<{self.tag} class={str(self.class_list)!r}>"

    @property
    def dataset(self) -> Dict[str, str]:
        """data-* attributes keyed like the browser's dataset (data-foo-bar → fooBar)."""
        return {
            _camel(name[5:]): value
            for name, value in self.attrs.items()
            if name.startswith("data-")
        }

    @property
    def hidden(self) -> bool:
        return self.style.display == "none"

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attrs.get(name)

    @property
    def text_content(self) -> str:
        parts = list(self.text_parts)
        for child in self.children:
            parts.append(child.text_content)
        return "".join(parts)

    def iter(self) -> Iterator["Element"]:
        """Depth-first, document order, including self."""
        yield self
        for child in self.children:
            yield from child.iter()

    # ── Events ───────────────────────────────────────────────────────────────

    def add_event_listener(self, event: str, handler: Callable[["Element"], None]):
        self._listeners.setdefault(event, []).append(handler)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def dispatch(self, event: str):
        for handler in list(self._listeners.get(event, [])):
            handler(self)

    def click(self):
        self.dispatch("click")


class Document:
    """A parsed page plus its ready state and document-level listeners."""

    def __init__(self, root: Element, ready_state: str = "complete"):
        self.root = root
        self.ready_state = ready_state
        self._listeners: Dict[str, List[Callable]] = {}
        # Names of one-time initializers that already ran on this document
        self.initialized: set = set()

    def add_event_listener(self, event: str, handler: Callable[["Document"], None]):
        self._listeners.setdefault(event, []).append(handler)

    def finish_loading(self):
        """Leave the loading state and fire DOMContentLoaded once."""
        if self.ready_state != "loading":
            return
        self.ready_state = "interactive"
        for handler in list(self._listeners.get(CONTENT_LOADED, [])):
            handler(self)

    def elements_with_class(self, *class_names: str) -> List[Element]:
        """Elements carrying any of ``class_names``, in document order."""
        return [
            el for el in self.root.iter()
            if any(name in el.class_list for name in class_names)
        ]

    def elements_with_attribute(self, name: str) -> List[Element]:
        return [el for el in self.root.iter() if name in el.attrs]

    @property
    def text_content(self) -> str:
        return self.root.text_content


class _TreeBuilder(HTMLParser):

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.root = Element("#document")
        self._current = self.root

    def handle_starttag(self, tag, attrs):
        el = Element(tag, {k: (v if v is not None else "") for k, v in attrs}, self._current)
        self._current.children.append(el)
        if tag not in VOID_ELEMENTS:
            self._current = el

    def handle_startendtag(self, tag, attrs):
        el = Element(tag, {k: (v if v is not None else "") for k, v in attrs}, self._current)
        self._current.children.append(el)

    def handle_endtag(self, tag):
        # Close up to the nearest matching open element; stray end tags are ignored
        node = self._current
        while node is not self.root and node.tag != tag:
            node = node.parent
        if node is not self.root:
            self._current = node.parent

    def handle_data(self, data):
        self._current.text_parts.append(data)


def parse_html(markup: str, ready_state: str = "complete") -> Document:
    """Build a Document from HTML text."""
    builder = _TreeBuilder()
    builder.feed(markup)
    builder.close()
    return Document(builder.root, ready_state=ready_state)
