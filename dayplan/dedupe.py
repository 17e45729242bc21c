# dayplan/dedupe.py
import logging
import re
import unicodedata
from typing import Callable, List, Optional, Tuple

from .clock import overlaps
from .models import RunLog, TimeSlot
from .normalize import LOCAL_SOURCE

logger = logging.getLogger(__name__)

# (local title, calendar title) -> same event?
TitleMatcher = Callable[[str, str], bool]

_ASPECT_PREFIX = re.compile(r"^\[[^\]]+\]\s*")
_BRACKETS = re.compile(r"[\[\]()（）「」【】<>{}]")


def normalize_title(title: str) -> str:
    """Lowercase, strip diacritics, aspect prefix, brackets and all whitespace."""
    text = _ASPECT_PREFIX.sub("", title)
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _BRACKETS.sub("", text)
    return "".join(text.lower().split())


class SubstringTitleMatcher:
    """Titles match when either normalized title contains the other."""

    def __call__(self, local_title: str, calendar_title: str) -> bool:
        a, b = normalize_title(local_title), normalize_title(calendar_title)
        if not a or not b:
            return False
        return a in b or b in a


def collapse_duplicates(slots: List[TimeSlot],
                        matcher: Optional[TitleMatcher] = None,
                        run_log: Optional[RunLog] = None,
                        ) -> Tuple[List[TimeSlot], List[Tuple[TimeSlot, TimeSlot]]]:
    """
    Drop local event-log slots that duplicate an overlapping calendar slot.

    Returns (kept slots, [(dropped local slot, calendar slot it duplicated)]).
    """
    matcher = matcher or SubstringTitleMatcher()
    run_log = run_log if run_log is not None else RunLog()
    calendar = [s for s in slots if s.source_id != LOCAL_SOURCE]

    kept: List[TimeSlot] = []
    dropped: List[Tuple[TimeSlot, TimeSlot]] = []
    for s in slots:
        if s.source_id != LOCAL_SOURCE:
            kept.append(s)
            continue
        twin = next(
            (c for c in calendar
             if overlaps(s.start, s.end, c.start, c.end) and matcher(s.label, c.label)),
            None,
        )
        if twin is None:
            kept.append(s)
        else:
            logger.debug("local %r duplicates %r (%s)", s.label, twin.label, twin.source_id)
            run_log.dropped(f"duplicate of {twin.source_id} entry {twin.label!r}: {s.label!r}")
            dropped.append((s, twin))
    return kept, dropped
