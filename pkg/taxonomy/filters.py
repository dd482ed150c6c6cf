"""
Status filter engine for taxonomy list pages.

State machine (one engine per page):
  Unfiltered ──activate(T != "all")──▶ FilteredBy(T)
  FilteredBy(T) ──activate("all")──▶ Unfiltered

Every activation clears the active marker from all controls, marks the
activated one, then recomputes visibility for every card:

  Unfiltered     → every card shown (display "")
  FilteredBy(T)  → card shown iff its status token == T, else display "none"

A card's token is its data-status attribute when present, otherwise the
first class matching ``--<token>`` (e.g. ``idea-card--active``). Cards
without a token are hidden under any concrete filter.

Controls and cards are discovered once, when the document is ready. Cards
inserted later are not picked up.
"""
import re
import logging
from dataclasses import dataclass
from typing import List, Optional

from .dom import CONTENT_LOADED, Document, Element

logger = logging.getLogger(__name__)

ALL = "all"

CONTROL_CLASSES = ("filter-btn", "filter-button")
ACTIVE_CLASSES = ("filter-btn--active", "filter-button--active")
ACTIVE_CLASS = "filter-btn--active"
CARD_CLASSES = ("idea-card", "story-card", "sprint-card", "figure-card")

STATUS_CLASS_RE = re.compile(r"--([\w-]+)$")

_INIT_FLAG = "status-filters"


@dataclass(frozen=True)
class FilterState:
    """Either Unfiltered (token is None) or FilteredBy(token)."""
    token: Optional[str] = None

    @property
    def is_filtered(self) -> bool:
        return self.token is not None

    def __str__(self) -> str:
        return f"FilteredBy({self.token})" if self.is_filtered else "Unfiltered"


UNFILTERED = FilterState()


def transition(state: FilterState, token: Optional[str]) -> FilterState:
    """Next state after activating a control bound to ``token``."""
    if token is None or token == ALL:
        return UNFILTERED
    return FilterState(token)


def status_from_classes(classes) -> Optional[str]:
    """First ``--token`` suffix among ``classes``, in class-attribute order."""
    for name in classes:
        match = STATUS_CLASS_RE.search(name)
        if match:
            return match.group(1)
    return None


def card_status(card: Element) -> Optional[str]:
    """Status token of a card: data-status first, class modifier as fallback."""
    status = card.get_attribute("data-status")
    if status:
        return status
    return status_from_classes(card.class_list)


def is_visible(card: Element, state: FilterState) -> bool:
    if not state.is_filtered:
        return True
    return card_status(card) == state.token


class StatusFilterEngine:
    """Keeps card visibility in sync with the single active filter control."""

    def __init__(self):
        self.state = UNFILTERED
        self.controls: List[Element] = []
        self.cards: List[Element] = []
        self.document: Optional[Document] = None

    def attach(self, document: Document) -> bool:
        """
        Wire the engine to ``document`` once it is ready.

        Returns False if filters were already initialized on this document,
        so listeners are never attached twice.
        """
        if _INIT_FLAG in document.initialized:
            return False
        document.initialized.add(_INIT_FLAG)
        self.document = document
        if document.ready_state == "loading":
            document.add_event_listener(CONTENT_LOADED, self._discover)
        else:
            self._discover(document)
        return True

    def _discover(self, document: Document):
        self.controls = document.elements_with_class(*CONTROL_CLASSES)
        self.cards = document.elements_with_class(*CARD_CLASSES)
        for control in self.controls:
            control.add_event_listener("click", self.activate)
        logger.debug(
            f"Status filters attached: {len(self.controls)} controls, {len(self.cards)} cards"
        )

    def activate(self, control: Element) -> FilterState:
        """Handle a click on ``control``; returns the new state."""
        token = control.dataset.get("filter")
        for other in self.controls:
            other.class_list.remove(*ACTIVE_CLASSES)
        control.class_list.add(ACTIVE_CLASS)
        self.state = transition(self.state, token)
        self.apply()
        return self.state

    def apply(self):
        """Recompute display for every discovered card from the current state."""
        for card in self.cards:
            card.style.display = "" if is_visible(card, self.state) else "none"

    @property
    def active_controls(self) -> List[Element]:
        return [c for c in self.controls if any(a in c.class_list for a in ACTIVE_CLASSES)]

    @property
    def visible_cards(self) -> List[Element]:
        return [c for c in self.cards if not c.hidden]


def init_filters(document: Document) -> StatusFilterEngine:
    """Create an engine and attach it to ``document``."""
    engine = StatusFilterEngine()
    engine.attach(document)
    return engine
