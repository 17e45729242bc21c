# dayplan/conflicts.py
"""
Cross-source overlap resolution for confirmed slots.

Two slots from different sources that overlap are resolved by the rule
table: the better-ranked source wins and the loser is deleted, shifted
later, shrunk, or kept. Overlaps within one source are left alone.

Every change is returned as a Resolution so callers can show what moved.
"""

import logging
from dataclasses import replace
from typing import FrozenSet, List, Optional, Set, Tuple

from .clock import MIDNIGHT, minutes_to_time, overlaps
from .models import (
    DELETE,
    KEEP,
    SHIFT,
    SHRINK,
    ConflictRuleTable,
    Resolution,
    RunLog,
    ShiftParams,
    ShrinkParams,
    TimeSlot,
)

logger = logging.getLogger(__name__)

# warning categories
SHIFT_FAILED = "shift_failed"
SHRINK_TOO_SHORT = "shrink_below_minimum"
OVERLAP_TOLERATED = "overlap_tolerated"
BUDGET_EXHAUSTED = "budget_exhausted"

Entry = Tuple[int, TimeSlot]  # (uid, slot); uid survives shifts and shrinks


def _sorted(work: List[Entry]) -> List[Entry]:
    return sorted(work, key=lambda e: (e[1].start, e[1].end, e[0]))


def _first_overlap(work: List[Entry],
                   skip: Set[FrozenSet[int]]) -> Optional[Tuple[Entry, Entry]]:
    """First cross-source overlapping pair in time order, `work` already sorted."""
    for i, (uid_a, a) in enumerate(work):
        for uid_b, b in work[i + 1:]:
            if b.start >= a.end:
                break
            if a.source_id == b.source_id:
                continue
            if frozenset((uid_a, uid_b)) in skip:
                continue
            return (uid_a, a), (uid_b, b)
    return None


def _pick_winner(a: Entry, b: Entry, rules: ConflictRuleTable) -> Optional[Tuple[Entry, Entry]]:
    """
    (winner, loser). A slot without a ranked source beats a ranked one;
    between two unranked slots there is no winner.
    """
    ra, rb = rules.rank(a[1].source_id), rules.rank(b[1].source_id)
    if ra is None and rb is None:
        return None
    if ra is None:
        return a, b
    if rb is None:
        return b, a
    return (a, b) if ra < rb else (b, a)


def _find_shift(loser: TimeSlot,
                winner: TimeSlot,
                others: List[TimeSlot],
                params: ShiftParams,
                hard_end: int) -> Optional[int]:
    duration = loser.minutes
    limit = loser.start + params.max_shift_minutes
    step = max(params.step_minutes, 1)
    candidate = winner.end
    while candidate <= limit and candidate + duration <= hard_end:
        end = candidate + duration
        if not any(overlaps(candidate, end, o.start, o.end) for o in others):
            return candidate
        candidate += step
    return None


def _shrink(loser: TimeSlot, winner: TimeSlot) -> Tuple[int, int]:
    """Loser's range with the overlapping part cut off."""
    if loser.start < winner.start:
        head = (loser.start, winner.start)
        tail = (winner.end, loser.end)
        if loser.end > winner.end and tail[1] - tail[0] > head[1] - head[0]:
            return tail
        return head
    return winner.end, max(loser.end, winner.end)


def resolve_conflicts(slots: List[TimeSlot],
                      rules: ConflictRuleTable,
                      day_start: int,
                      day_end: int,
                      run_log: Optional[RunLog] = None,
                      ) -> Tuple[List[TimeSlot], List[Resolution]]:
    """
    Remove overlaps between confirmed slots of different sources.

    Repeats until no cross-source overlap remains or the iteration budget
    (2x the slot count) runs out. Returns (slots sorted by start, audit).
    """
    run_log = run_log if run_log is not None else RunLog()
    work: List[Entry] = _sorted(list(enumerate(slots)))
    resolutions: List[Resolution] = []
    tolerated: Set[FrozenSet[int]] = set()
    undecided: Set[FrozenSet[int]] = set()
    budget = 2 * len(slots)

    for _ in range(budget):
        pair = _first_overlap(work, tolerated | undecided)
        if pair is None:
            break
        picked = _pick_winner(pair[0], pair[1], rules)
        if picked is None:
            undecided.add(frozenset((pair[0][0], pair[1][0])))
            run_log.warn(OVERLAP_TOLERATED,
                         f"{pair[0][1].label!r} and {pair[1][1].label!r} overlap "
                         f"and neither source is ranked")
            continue
        (_, winner), (loser_uid, loser) = picked
        requested, rule = rules.rule_for(loser)
        others = [s for uid, s in work if uid != loser_uid]
        before = (loser.start, loser.end)
        after: Optional[Tuple[int, int]] = None
        applied = requested
        warning = None

        if requested in (SHIFT, KEEP):
            params = rule.shift if rule is not None and rule.shift else ShiftParams()
            hard_end = MIDNIGHT if requested == KEEP or params.allow_exceed_active_hours else day_end
            start = _find_shift(loser, winner, others, params, hard_end)
            if start is not None:
                after = (start, start + loser.minutes)
            elif requested == SHIFT:
                applied = DELETE
                warning = (f"{SHIFT_FAILED}: no room within {params.max_shift_minutes} min "
                           f"after {minutes_to_time(winner.end)}")
                run_log.warn(SHIFT_FAILED, f"{loser.label!r} deleted, {warning}")
            else:
                # nothing changes, so nothing is audited
                tolerated.add(frozenset((pair[0][0], pair[1][0])))
                run_log.warn(OVERLAP_TOLERATED,
                             f"no room to move {loser.label!r}, kept it overlapping {winner.label!r}")
                continue
        elif requested == SHRINK:
            params = rule.shrink if rule is not None and rule.shrink else ShrinkParams()
            start, end = _shrink(loser, winner)
            if end - start >= params.min_minutes:
                after = (start, end)
            else:
                applied = DELETE
                warning = f"{SHRINK_TOO_SHORT}: {max(end - start, 0)} min left, minimum {params.min_minutes}"
                run_log.warn(SHRINK_TOO_SHORT, f"{loser.label!r} deleted, {warning}")
        else:
            applied = DELETE

        resolutions.append(Resolution(
            loser=loser,
            winner=winner,
            action=applied,
            requested=requested,
            before=before,
            after=after,
            warning=warning,
        ))
        logger.info("%s %r (%s) against %r (%s)",
                    applied, loser.label, loser.source_id, winner.label, winner.source_id)

        work = [e for e in work if e[0] != loser_uid]
        if after is not None:
            work.append((loser_uid, replace(loser, start=after[0], end=after[1])))
        work = _sorted(work)
    else:
        if budget and _first_overlap(work, tolerated | undecided) is not None:
            run_log.warn(BUDGET_EXHAUSTED,
                         f"stopped after {budget} resolutions with overlaps remaining")

    return [s for _, s in work], resolutions


def reconcile_sources(slots: List[TimeSlot],
                      source_priority: List[str],
                      run_log: Optional[RunLog] = None,
                      ) -> Tuple[List[TimeSlot], List[Resolution]]:
    """
    Conservative variant for pulled data: the lower-priority side of a
    cross-source overlap is deleted, nothing is moved or trimmed.
    """
    rules = ConflictRuleTable(source_priority=list(source_priority))
    run_log = run_log if run_log is not None else RunLog()
    work: List[Entry] = _sorted(list(enumerate(slots)))
    resolutions: List[Resolution] = []
    undecided: Set[FrozenSet[int]] = set()

    for _ in range(2 * len(slots)):
        pair = _first_overlap(work, undecided)
        if pair is None:
            break
        picked = _pick_winner(pair[0], pair[1], rules)
        if picked is None:
            undecided.add(frozenset((pair[0][0], pair[1][0])))
            continue
        (_, winner), (loser_uid, loser) = picked
        resolutions.append(Resolution(
            loser=loser,
            winner=winner,
            action=DELETE,
            requested=DELETE,
            before=(loser.start, loser.end),
        ))
        run_log.dropped(f"{loser.source_id} entry {loser.label!r} overlaps "
                        f"{winner.source_id} entry {winner.label!r}")
        work = [e for e in work if e[0] != loser_uid]

    return [s for _, s in work], resolutions
