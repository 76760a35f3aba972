"""
Single-elimination advancement: linking, winner propagation and bye resolution.

Matches are held in an arena indexed by id. Parent links are always derived
from the (round, position) formula and never trusted from stored data: the
match at native round r, position p feeds native round r-1, position p//2,
slot "a" when p is even and "b" otherwise. The native round counts down to
the final at 0. Legacy brackets store it directly. Phases created by a round
transition store it inverted and offset; they are recognised by their round
sizes shrinking as the round number grows.
"""
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from bracketeer.core.config import settings
from bracketeer.core.retry import with_retry
from bracketeer.models.bracket_model import BracketType, MatchSlot, MatchStatus, SingleElimMatch
from bracketeer.models.result_model import AdvancementReport, AuditEntry

logger = logging.getLogger(__name__)

GroupRound = Tuple[Optional[str], int]


def native_round_map(matches: Iterable[SingleElimMatch]) -> Dict[GroupRound, int]:
    """Maps each (group_id, stored round) to its native round (0 = final)."""
    counts: Dict[Optional[str], Dict[int, int]] = defaultdict(lambda: defaultdict(int))
    for m in matches:
        counts[m.group_id][m.round] += 1

    native: Dict[GroupRound, int] = {}
    for group_id, per_round in counts.items():
        rounds = sorted(per_round)
        lowest, highest = rounds[0], rounds[-1]
        if len(rounds) == 1:
            # Lone round: its size tells how far it is from the final
            native[(group_id, lowest)] = max(per_round[lowest].bit_length() - 1, 0)
            continue
        if per_round[highest] != per_round[lowest]:
            descending = per_round[highest] > per_round[lowest]
        else:
            descending = group_id is None
        for r in rounds:
            native[(group_id, r)] = r if descending else highest - r
    return native


def round_label(native_round: int, total_rounds: int) -> str:
    if native_round == 0:
        return "Final"
    return f"Round {total_rounds - native_round}"


class BracketArena:
    """
    Mutable working copy of one event's single-elimination matches.

    Every change is recorded in ``changes`` (match id -> updated fields) so the
    caller can persist exactly what moved.
    """

    def __init__(self, matches: Iterable[SingleElimMatch]):
        self.matches: Dict[str, SingleElimMatch] = {}
        for m in matches:
            if m.bracket_type == BracketType.SINGLE_ELIM.value and m.id:
                self.matches[m.id] = m.model_copy()
        self.changes: Dict[str, dict] = {}
        self._native = native_round_map(self.matches.values())
        self._by_position: Dict[Tuple[Optional[str], int, int], str] = {
            (m.group_id, self.native_round(m), m.position): m.id for m in self.matches.values()
        }

    def native_round(self, match: SingleElimMatch) -> int:
        return self._native[(match.group_id, match.round)]

    def _set(self, match_id: str, **fields) -> None:
        match = self.matches[match_id]
        self.matches[match_id] = match.model_copy(update=fields)
        self.changes.setdefault(match_id, {}).update(fields)

    def parent_of(self, match: SingleElimMatch) -> Optional[Tuple[SingleElimMatch, MatchSlot]]:
        native = self.native_round(match)
        if native == 0:
            return None
        parent_id = self._by_position.get((match.group_id, native - 1, match.position // 2))
        if parent_id is None:
            return None
        slot = MatchSlot.A if match.position % 2 == 0 else MatchSlot.B
        return self.matches[parent_id], slot

    def link(self) -> int:
        """Sets next_match_id/next_match_slot where they differ from the formula. Idempotent."""
        updated = 0
        for match in list(self.matches.values()):
            if self.native_round(match) == 0:
                continue
            parent = self.parent_of(match)
            if parent is None:
                logger.warning("Match %s (round %s, position %s) has no parent yet; skipping link",
                               match.id, match.round, match.position)
                continue
            parent_match, slot = parent
            if match.next_match_id != parent_match.id or match.next_match_slot != slot.value:
                self._set(match.id, next_match_id=parent_match.id, next_match_slot=slot.value)
                updated += 1
        return updated

    def advance_winners(self) -> int:
        """Copies each completed match's winner into its linked slot, unless the target is completed."""
        advanced = 0
        for match in list(self.matches.values()):
            if not match.is_completed or not match.winner_id or not match.next_match_id:
                continue
            target = self.matches.get(match.next_match_id)
            if target is None:
                logger.warning("Match %s links to unknown match %s; skipping", match.id, match.next_match_id)
                continue
            if target.is_completed:
                continue
            field = "team_b_id" if match.next_match_slot == MatchSlot.B.value else "team_a_id"
            if getattr(target, field) != match.winner_id:
                self._set(target.id, **{field: match.winner_id})
                advanced += 1
        return advanced

    def fed_slots(self) -> set:
        """
        (match id, slot) pairs still waiting on an upstream match. A feeder
        only stops feeding once it is completed with a winner.
        """
        fed = set()
        for match in self.matches.values():
            if match.next_match_id and not (match.is_completed and match.winner_id):
                fed.add((match.next_match_id, match.next_match_slot or MatchSlot.A.value))
        return fed

    def find_byes(self) -> List[SingleElimMatch]:
        fed = self.fed_slots()
        byes = []
        for match in self.matches.values():
            if match.winner_id or match.is_completed:
                continue
            has_a, has_b = bool(match.team_a_id), bool(match.team_b_id)
            if has_a == has_b:
                continue # both present is a real match, both missing is still waiting
            missing = MatchSlot.B.value if has_a else MatchSlot.A.value
            if (match.id, missing) not in fed:
                byes.append(match)
        return byes

    def resolve_byes(self) -> List[SingleElimMatch]:
        byes = self.find_byes()
        for match in byes:
            self._set(match.id, winner_id=match.team_a_id or match.team_b_id, status=MatchStatus.COMPLETED.value)
        return [self.matches[m.id] for m in byes]

    def run_pass(self, report: AdvancementReport) -> bool:
        """One link / advance / bye pass. Returns True if anything changed."""
        linked = self.link()
        advanced = self.advance_winners()
        byes = self.resolve_byes()
        report.links_updated += linked
        report.winners_advanced += advanced
        for match in byes:
            report.byes_resolved.append(match.id)
            report.audit.append(AuditEntry(
                action="bracket.resolve_bye",
                message=f"Auto-advanced team {match.winner_id} through a bye",
                metadata={"match_id": match.id, "round": match.round, "team_id": match.winner_id},
            ))
        return bool(linked or advanced or byes)


def advance_bracket(
    matches: Iterable[SingleElimMatch],
    max_passes: Optional[int] = None,
) -> Tuple[List[SingleElimMatch], AdvancementReport]:
    """
    In-memory fixed point: runs passes until one changes nothing, at most
    ``max_passes`` times. Returns the updated matches in input order.
    """
    matches = list(matches)
    max_passes = max_passes or settings.BYE_RESOLUTION_MAX_PASSES
    arena = BracketArena(matches)
    report = AdvancementReport()

    for _ in range(max_passes):
        pass_report = AdvancementReport()
        changed = arena.run_pass(pass_report)
        _merge(report, pass_report)
        if not changed:
            break
        report.passes += 1
    else:
        report.converged = not _has_pending_work(arena)

    updated = [arena.matches.get(m.id, m) if m.id else m for m in matches]
    return updated, report


def _merge(report: AdvancementReport, pass_report: AdvancementReport) -> None:
    report.links_updated += pass_report.links_updated
    report.winners_advanced += pass_report.winners_advanced
    report.byes_resolved.extend(pass_report.byes_resolved)
    report.audit.extend(pass_report.audit)


def _has_pending_work(arena: BracketArena) -> bool:
    probe = BracketArena(arena.matches.values())
    return probe.run_pass(AdvancementReport())


async def finalize_single_elim_bracket(store, event_id: str, max_passes: Optional[int] = None) -> AdvancementReport:
    """
    Links the event's single-elimination matches and resolves byes against
    the store, re-reading the matches before every pass. Safe to call
    repeatedly and from several clients at once: every pass derives the same
    updates from the same state.
    """
    max_passes = max_passes or settings.BYE_RESOLUTION_MAX_PASSES
    report = AdvancementReport()

    for _ in range(max_passes):
        current = await with_retry(lambda: store.list_matches(event_id), description="list matches")
        single_elim = [m for m in current if m.bracket_type == BracketType.SINGLE_ELIM.value]
        if not single_elim:
            break

        arena = BracketArena(single_elim)
        pass_report = AdvancementReport()
        if not arena.run_pass(pass_report):
            break

        for match_id, fields in arena.changes.items():
            await with_retry(
                lambda match_id=match_id, fields=fields: store.update_match(match_id, fields),
                description=f"update match {match_id}",
            )
        _merge(report, pass_report)
        report.passes += 1
        logger.debug("Event %s pass %d: %d matches updated", event_id, report.passes, len(arena.changes))
    else:
        current = await with_retry(lambda: store.list_matches(event_id), description="list matches")
        arena = BracketArena([m for m in current if m.bracket_type == BracketType.SINGLE_ELIM.value])
        report.converged = not arena.run_pass(AdvancementReport())
        if not report.converged:
            logger.warning("Event %s: bye resolution stopped at the %d-pass bound", event_id, max_passes)

    if report.byes_resolved:
        logger.info("Event %s: resolved %d byes in %d passes", event_id, len(report.byes_resolved), report.passes)
    return report
