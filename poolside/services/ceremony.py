"""
Eviction ceremony model and step validator.

A week is a list of EvictionCycle objects (one on a regular week, two on a
double eviction, three on a triple) or, on the finale, a flat ballot of
winner / runner-up / America's Favorite. Nothing here stores where a ceremony
"is": the current step is always derived from which fields are filled, so a
half-saved draft can be resumed from any point.

Validation comes in two strengths:

* check_constraints() -- invariants that no write may break, even a draft
  (HOH on the block, replacement overlapping the veto players, ...).
* unmet_steps() -- everything still missing or illegal before the week can be
  submitted. Advisory while drafting; validate_for_submit() turns it into an
  IncompleteWeekError.
"""

import enum
from dataclasses import dataclass, field, asdict

from poolside.core.errors import ConstraintViolation, IncompleteWeekError
from poolside.models.models import WeekEventRecord, NO_EVICTION

CYCLE_PREFIXES = ("", "second_", "third_")
CYCLE_FIELDS = (
    "hoh_winner", "nominees", "pov_winner", "pov_used", "pov_used_on",
    "replacement_nominee", "ai_arena_winner", "evicted",
)
MIN_NOMINEES = 2
ARENA_THRESHOLD = 3


class CeremonyStep(str, enum.Enum):
    AWAITING_HOH = "awaiting_hoh"
    AWAITING_NOMINEES = "awaiting_nominees"
    AWAITING_VETO = "awaiting_veto"
    AWAITING_VETO_DECISION = "awaiting_veto_decision"
    AWAITING_REPLACEMENT = "awaiting_replacement"
    AWAITING_ARENA = "awaiting_arena"
    AWAITING_EVICTION = "awaiting_eviction"
    AWAITING_FINAL_RESULTS = "awaiting_final_results"
    COMPLETE = "complete"


# Short step names used in issues ("which step is unmet")
STEP_NAMES = {
    CeremonyStep.AWAITING_HOH: "hoh",
    CeremonyStep.AWAITING_NOMINEES: "nominees",
    CeremonyStep.AWAITING_VETO: "veto",
    CeremonyStep.AWAITING_VETO_DECISION: "veto_decision",
    CeremonyStep.AWAITING_REPLACEMENT: "replacement",
    CeremonyStep.AWAITING_ARENA: "arena",
    CeremonyStep.AWAITING_EVICTION: "eviction",
    CeremonyStep.AWAITING_FINAL_RESULTS: "final_results",
}


@dataclass(frozen=True)
class StepIssue:
    step: str
    field: str
    message: str
    cycle: int | None = None  # 1-based; None for week-level issues

    def to_dict(self) -> dict:
        return asdict(self)


def _as_id(value):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise TypeError("contestant id cannot be a boolean")
    if isinstance(value, int):
        return value
    return int(value)


def _unique(ids) -> list[int]:
    seen = []
    for cid in ids:
        if cid is not None and cid not in seen:
            seen.append(cid)
    return seen


@dataclass
class EvictionCycle:
    hoh_winner: int | None = None
    nominees: list[int] = field(default_factory=list)
    pov_winner: int | None = None
    pov_used: bool | None = None  # None = veto meeting not held yet
    pov_used_on: int | None = None
    replacement_nominee: int | None = None
    ai_arena_winner: int | None = None
    evicted: int | str | None = None  # contestant id or NO_EVICTION

    @classmethod
    def from_dict(cls, data: dict | None) -> "EvictionCycle":
        data = data or {}
        evicted = data.get("evicted")
        if evicted not in (None, "", NO_EVICTION):
            evicted = _as_id(evicted)
        elif evicted == "":
            evicted = None
        return cls(
            hoh_winner=_as_id(data.get("hoh_winner")),
            nominees=[_as_id(n) for n in (data.get("nominees") or []) if n not in (None, "")],
            pov_winner=_as_id(data.get("pov_winner")),
            pov_used=data.get("pov_used"),
            pov_used_on=_as_id(data.get("pov_used_on")),
            replacement_nominee=_as_id(data.get("replacement_nominee")),
            ai_arena_winner=_as_id(data.get("ai_arena_winner")),
            evicted=evicted,
        )

    def to_dict(self) -> dict:
        return {
            "hoh_winner": self.hoh_winner,
            "nominees": list(self.nominees),
            "pov_winner": self.pov_winner,
            "pov_used": self.pov_used,
            "pov_used_on": self.pov_used_on,
            "replacement_nominee": self.replacement_nominee,
            "ai_arena_winner": self.ai_arena_winner,
            "evicted": self.evicted,
        }

    @property
    def filled_nominees(self) -> list[int]:
        return _unique(self.nominees)

    @property
    def veto_target(self) -> int | None:
        return self.pov_used_on if self.pov_used else None

    @property
    def evicted_contestant(self) -> int | None:
        if self.evicted is None or self.evicted == NO_EVICTION:
            return None
        return self.evicted

    @property
    def eviction_recorded(self) -> bool:
        return self.evicted is not None

    def post_veto_nominees(self) -> list[int]:
        """Nominees after the veto meeting: saved nominee off, replacement on."""
        nominees = self.filled_nominees
        if self.pov_used and self.pov_used_on is not None:
            nominees = [n for n in nominees if n != self.pov_used_on]
            if self.replacement_nominee is not None and self.replacement_nominee not in nominees:
                nominees.append(self.replacement_nominee)
        return nominees

    def final_nominee_set(self) -> list[int]:
        """Who can actually be evicted: post-veto nominees minus the Arena winner."""
        return [n for n in self.post_veto_nominees() if n != self.ai_arena_winner]

    def named_contestants(self) -> list[int]:
        return _unique(
            [self.hoh_winner, *self.nominees, self.pov_winner, self.pov_used_on,
             self.replacement_nominee, self.ai_arena_winner, self.evicted_contestant]
        )


@dataclass
class WeekCeremony:
    week_number: int
    cycles: list[EvictionCycle] = field(default_factory=list)
    is_double_eviction: bool = False
    is_triple_eviction: bool = False
    is_final_week: bool = False
    is_jury_phase: bool = False
    ai_arena_enabled: bool = False
    winner: int | None = None
    runner_up: int | None = None
    americas_favorite: int | None = None
    max_nominees: int = 4

    @property
    def cycle_count(self) -> int:
        if self.is_final_week:
            return 0
        if self.is_triple_eviction:
            return 3
        if self.is_double_eviction:
            return 2
        return 1

    def active_cycles(self) -> list[EvictionCycle]:
        """Exactly cycle_count cycles; missing ones are empty, extras are ignored."""
        cycles = list(self.cycles[: self.cycle_count])
        while len(cycles) < self.cycle_count:
            cycles.append(EvictionCycle())
        return cycles

    def arena_in_play(self, index: int) -> bool:
        return index == 0 and self.ai_arena_enabled

    def evicted_ids(self) -> list[int]:
        return _unique(c.evicted_contestant for c in self.active_cycles())

    def named_contestants(self) -> list[int]:
        named = []
        for cycle in self.active_cycles():
            named.extend(cycle.named_contestants())
        if self.is_final_week:
            named.extend([self.winner, self.runner_up, self.americas_favorite])
        return _unique(named)

    # --- Persistence ---

    @classmethod
    def from_record(cls, record: WeekEventRecord, max_nominees: int = 4) -> "WeekCeremony":
        return cls(
            week_number=record.week_number,
            cycles=[EvictionCycle.from_dict(c) for c in (record.cycles or [])],
            is_double_eviction=bool(record.is_double_eviction),
            is_triple_eviction=bool(record.is_triple_eviction),
            is_final_week=bool(record.is_final_week),
            is_jury_phase=bool(record.is_jury_phase),
            ai_arena_enabled=bool(record.ai_arena_enabled),
            winner=record.winner,
            runner_up=record.runner_up,
            americas_favorite=record.americas_favorite,
            max_nominees=max_nominees,
        )

    def apply_to(self, record: WeekEventRecord) -> WeekEventRecord:
        record.week_number = self.week_number
        record.is_double_eviction = self.is_double_eviction
        record.is_triple_eviction = self.is_triple_eviction
        record.is_final_week = self.is_final_week
        record.is_jury_phase = self.is_jury_phase
        record.ai_arena_enabled = self.ai_arena_enabled
        # Always assign a fresh list so the JSON column registers the change
        record.cycles = [c.to_dict() for c in self.active_cycles()]
        record.winner = self.winner if self.is_final_week else None
        record.runner_up = self.runner_up if self.is_final_week else None
        record.americas_favorite = self.americas_favorite if self.is_final_week else None
        return record

    # --- Legacy flat shape ---

    @classmethod
    def from_flat(cls, data: dict, week_number: int | None = None, max_nominees: int = 4) -> "WeekCeremony":
        """Build from the flat form shape (hoh_winner, second_hoh_winner, third_evicted, ...)."""
        cycles = []
        for prefix in CYCLE_PREFIXES:
            values = {name: data.get(prefix + name) for name in CYCLE_FIELDS}
            if prefix and all(v in (None, [], "") for v in values.values()):
                continue
            cycles.append(EvictionCycle.from_dict(values))
        return cls(
            week_number=week_number if week_number is not None else data["week_number"],
            cycles=cycles,
            is_double_eviction=bool(data.get("is_double_eviction")),
            is_triple_eviction=bool(data.get("is_triple_eviction")),
            is_final_week=bool(data.get("is_final_week")),
            is_jury_phase=bool(data.get("is_jury_phase")),
            ai_arena_enabled=bool(data.get("ai_arena_enabled")),
            winner=_as_id(data.get("winner")),
            runner_up=_as_id(data.get("runner_up")),
            americas_favorite=_as_id(data.get("americas_favorite")),
            max_nominees=max_nominees,
        )

    def to_flat(self) -> dict:
        flat = {
            "week_number": self.week_number,
            "is_double_eviction": self.is_double_eviction,
            "is_triple_eviction": self.is_triple_eviction,
            "is_final_week": self.is_final_week,
            "is_jury_phase": self.is_jury_phase,
            "ai_arena_enabled": self.ai_arena_enabled,
            "winner": self.winner,
            "runner_up": self.runner_up,
            "americas_favorite": self.americas_favorite,
        }
        cycles = self.active_cycles()
        for index, prefix in enumerate(CYCLE_PREFIXES):
            cycle = cycles[index] if index < len(cycles) else EvictionCycle()
            for name, value in cycle.to_dict().items():
                flat[prefix + name] = value
        return flat


# --- Step derivation ---

def arena_required(cycle: EvictionCycle, arena_enabled: bool) -> bool:
    return arena_enabled and len(cycle.post_veto_nominees()) >= ARENA_THRESHOLD


def current_step(cycle: EvictionCycle, arena_enabled: bool = False) -> CeremonyStep:
    """Derive where a cycle stands purely from its populated fields."""
    if cycle.hoh_winner is None:
        return CeremonyStep.AWAITING_HOH
    if len(cycle.filled_nominees) < MIN_NOMINEES:
        return CeremonyStep.AWAITING_NOMINEES
    if cycle.pov_winner is None:
        return CeremonyStep.AWAITING_VETO
    if cycle.pov_used is None or (cycle.pov_used and cycle.pov_used_on is None):
        return CeremonyStep.AWAITING_VETO_DECISION
    if cycle.pov_used and cycle.replacement_nominee is None:
        return CeremonyStep.AWAITING_REPLACEMENT
    if arena_required(cycle, arena_enabled) and cycle.ai_arena_winner is None:
        return CeremonyStep.AWAITING_ARENA
    if not cycle.eviction_recorded:
        return CeremonyStep.AWAITING_EVICTION
    return CeremonyStep.COMPLETE


def step_sequence(cycle: EvictionCycle, arena_enabled: bool = False) -> list[CeremonyStep]:
    """The steps that apply to this cycle, in order. Conditional steps appear only once triggered."""
    steps = [
        CeremonyStep.AWAITING_HOH,
        CeremonyStep.AWAITING_NOMINEES,
        CeremonyStep.AWAITING_VETO,
        CeremonyStep.AWAITING_VETO_DECISION,
    ]
    if cycle.pov_used:
        steps.append(CeremonyStep.AWAITING_REPLACEMENT)
    if arena_required(cycle, arena_enabled):
        steps.append(CeremonyStep.AWAITING_ARENA)
    steps.append(CeremonyStep.AWAITING_EVICTION)
    return steps


def final_week_step(ceremony: WeekCeremony) -> CeremonyStep:
    if ceremony.winner is None or ceremony.runner_up is None:
        return CeremonyStep.AWAITING_FINAL_RESULTS
    return CeremonyStep.COMPLETE


# --- Eligibility ---

def cycle_roster(ceremony: WeekCeremony, index: int, week_roster: list[int]) -> list[int]:
    """Contestants still in the house for a cycle: the week's roster minus earlier cycles' evictees."""
    gone = set()
    for earlier in ceremony.active_cycles()[:index]:
        if earlier.evicted_contestant is not None:
            gone.add(earlier.evicted_contestant)
    return [cid for cid in week_roster if cid not in gone]


def nominee_candidates(cycle: EvictionCycle, roster: list[int]) -> list[int]:
    return [cid for cid in roster if cid != cycle.hoh_winner]


def veto_target_candidates(cycle: EvictionCycle) -> list[int]:
    return cycle.filled_nominees


def replacement_candidates(cycle: EvictionCycle, roster: list[int]) -> list[int]:
    excluded = {cycle.hoh_winner, cycle.pov_winner, cycle.pov_used_on, *cycle.filled_nominees}
    return [cid for cid in roster if cid not in excluded]


def arena_candidates(cycle: EvictionCycle) -> list[int]:
    return cycle.post_veto_nominees()


def eviction_candidates(cycle: EvictionCycle) -> list[int]:
    return cycle.final_nominee_set()


# --- Validation ---

def check_constraints(ceremony: WeekCeremony) -> list[StepIssue]:
    """Invariants every write must respect, drafts included."""
    issues = []
    for number, cycle in enumerate(ceremony.active_cycles(), start=1):
        nominees = [n for n in cycle.nominees if n is not None]
        if cycle.hoh_winner is not None and cycle.hoh_winner in nominees:
            issues.append(StepIssue("nominees", "nominees", "The HOH winner cannot be nominated", number))
        if len(set(nominees)) != len(nominees):
            issues.append(StepIssue("nominees", "nominees", "A contestant is nominated twice", number))
        if len(nominees) > ceremony.max_nominees:
            issues.append(StepIssue(
                "nominees", "nominees",
                f"At most {ceremony.max_nominees} nominees are allowed", number,
            ))
        if cycle.replacement_nominee is not None:
            blocked = {cycle.hoh_winner, cycle.pov_winner, cycle.pov_used_on, *nominees}
            if cycle.replacement_nominee in blocked:
                issues.append(StepIssue(
                    "replacement", "replacement_nominee",
                    "The replacement nominee cannot be the HOH, the veto winner, "
                    "the saved nominee or an existing nominee",
                    number,
                ))
        if cycle.replacement_nominee is not None and cycle.pov_used is False:
            issues.append(StepIssue(
                "replacement", "replacement_nominee",
                "A replacement nominee is set but the veto was not used", number,
            ))
    if ceremony.is_final_week and ceremony.winner is not None and ceremony.winner == ceremony.runner_up:
        issues.append(StepIssue("final_results", "runner_up", "The runner-up cannot also be the winner"))
    return issues


def _cycle_issues(ceremony: WeekCeremony, index: int, cycle: EvictionCycle, roster: list[int] | None) -> list[StepIssue]:
    number = index + 1
    arena_enabled = ceremony.arena_in_play(index)
    issues = []

    def add(step, field_name, message):
        issues.append(StepIssue(step, field_name, message, number))

    if cycle.hoh_winner is None:
        add("hoh", "hoh_winner", "HOH winner is required")
    if len(cycle.filled_nominees) < MIN_NOMINEES:
        add("nominees", "nominees", f"At least {MIN_NOMINEES} nominees are required")
    if cycle.pov_winner is None:
        add("veto", "pov_winner", "POV winner is required")
    if cycle.pov_used is None:
        add("veto_decision", "pov_used", "Record whether the veto was used")
    elif cycle.pov_used:
        if cycle.pov_used_on is None:
            add("veto_decision", "pov_used_on", "Record who the veto was used on")
        elif cycle.pov_used_on not in cycle.filled_nominees:
            add("veto_decision", "pov_used_on", "The veto can only be used on a nominee")
        if cycle.replacement_nominee is None:
            add("replacement", "replacement_nominee", "A replacement nominee is required when the veto is used")

    if arena_required(cycle, arena_enabled):
        if cycle.ai_arena_winner is None:
            add("arena", "ai_arena_winner", "Arena winner is required when 3 or more nominees face eviction")
        elif cycle.ai_arena_winner not in arena_candidates(cycle):
            add("arena", "ai_arena_winner", "The Arena winner must be one of the nominees")
    elif cycle.ai_arena_winner is not None:
        add("arena", "ai_arena_winner", "An Arena winner is set but the Arena is not in play")

    if not cycle.eviction_recorded:
        add("eviction", "evicted", "Evicted contestant is required (or record no eviction)")
    elif cycle.evicted != NO_EVICTION and cycle.evicted not in eviction_candidates(cycle):
        add("eviction", "evicted", "The evicted contestant must be one of the final nominees")

    if roster is not None:
        cycle_in_house = cycle_roster(ceremony, index, roster)
        for cid in cycle.named_contestants():
            if cid not in cycle_in_house:
                add("roster", "contestants", f"Contestant {cid} is not in the house this cycle")
    return issues


def unmet_steps(ceremony: WeekCeremony, roster: list[int] | None = None) -> list[StepIssue]:
    """Every step still missing or illegal. Pass the week's roster to also check who is in the house."""
    if ceremony.is_final_week:
        issues = []
        if ceremony.winner is None:
            issues.append(StepIssue("final_results", "winner", "Season winner is required"))
        if ceremony.runner_up is None:
            issues.append(StepIssue("final_results", "runner_up", "Runner-up is required"))
        if roster is not None:
            for name in ("winner", "runner_up", "americas_favorite"):
                cid = getattr(ceremony, name)
                # America's Favorite may be any contestant, evicted or not
                if cid is not None and name != "americas_favorite" and cid not in roster:
                    issues.append(StepIssue("roster", name, f"Contestant {cid} is not in the house"))
        return issues

    issues = []
    for index, cycle in enumerate(ceremony.active_cycles()):
        issues.extend(_cycle_issues(ceremony, index, cycle, roster))
    return issues


def ensure_constraints(ceremony: WeekCeremony) -> None:
    issues = check_constraints(ceremony)
    if issues:
        raise ConstraintViolation(
            f"Week {ceremony.week_number} breaks ceremony rules: "
            + "; ".join(i.message for i in issues),
            issues,
        )


def validate_for_submit(ceremony: WeekCeremony, roster: list[int] | None = None) -> None:
    """Hard gate for submit: constraints first, then every unmet step at once."""
    ensure_constraints(ceremony)
    issues = unmet_steps(ceremony, roster)
    if issues:
        raise IncompleteWeekError(ceremony.week_number, issues)


@dataclass
class CycleState:
    cycle: int
    current_step: CeremonyStep
    steps: list[CeremonyStep]
    completed_steps: list[CeremonyStep]
    candidates: dict[str, list[int]]


@dataclass
class CeremonyState:
    week_number: int
    is_final_week: bool
    cycles: list[CycleState]
    final_step: CeremonyStep | None
    issues: list[StepIssue]
    can_submit: bool


def describe_state(ceremony: WeekCeremony, roster: list[int]) -> CeremonyState:
    """Advisory snapshot for an editing surface: where each cycle stands and who is eligible."""
    cycles = []
    for index, cycle in enumerate(ceremony.active_cycles()):
        arena_enabled = ceremony.arena_in_play(index)
        step = current_step(cycle, arena_enabled)
        sequence = step_sequence(cycle, arena_enabled)
        done = sequence if step == CeremonyStep.COMPLETE else sequence[: sequence.index(step)]
        in_house = cycle_roster(ceremony, index, roster)
        cycles.append(CycleState(
            cycle=index + 1,
            current_step=step,
            steps=sequence,
            completed_steps=list(done),
            candidates={
                "hoh_winner": in_house,
                "nominees": nominee_candidates(cycle, in_house),
                "pov_winner": in_house,
                "pov_used_on": veto_target_candidates(cycle),
                "replacement_nominee": replacement_candidates(cycle, in_house),
                "ai_arena_winner": arena_candidates(cycle) if arena_required(cycle, arena_enabled) else [],
                "evicted": eviction_candidates(cycle),
            },
        ))
    issues = check_constraints(ceremony) + unmet_steps(ceremony, roster)
    return CeremonyState(
        week_number=ceremony.week_number,
        is_final_week=ceremony.is_final_week,
        cycles=cycles,
        final_step=final_week_step(ceremony) if ceremony.is_final_week else None,
        issues=issues,
        can_submit=not issues,
    )
