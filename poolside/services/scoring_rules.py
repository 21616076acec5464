"""
Scoring rule lookups.

Rules live in the scoring_rules table keyed by (category, subcategory). A pool
may override any default rule (pool_id NULL) with its own. Everything that
turns a fact into points goes through ScoringRuleTable so precedence and
fallback behave the same way everywhere.
"""

import logging
import warnings

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from poolside.core.errors import ConfigurationError, MissingRuleWarning
from poolside.models.models import ScoringRule

logger = logging.getLogger(__name__)

# Categories
COMPETITION = "competition"
WEEKLY = "weekly"
FINAL_PLACEMENT = "final_placement"
JURY = "jury"
SPECIAL_EVENTS = "special_events"
SPECIAL_ACHIEVEMENTS = "special_achievements"

# Subcategories the ceremony writes to
HOH_WINNER = "hoh_winner"
POV_WINNER = "pov_winner"
POV_USED_ON = "pov_used_on"
NOMINEE = "nominee"
REPLACEMENT_NOMINEE = "replacement_nominee"
SURVIVED_NOMINATION = "survived_nomination"
SURVIVAL = "survival"
BB_ARENA_WINNER = "bb_arena_winner"
EVICTED = "evicted"
JURY_MEMBER = "jury_member"
WINNER = "winner"
RUNNER_UP = "runner_up"
AMERICAS_FAVORITE = "americas_favorite"
BLOCK_SURVIVAL_2 = "block_survival_2_weeks"
BLOCK_SURVIVAL_4 = "block_survival_4_weeks"
FLOATER = "floater_achievement"

# Special-event subcategories that change a contestant's status
SELF_EVICTED = "self_evicted"
REMOVED_PRODUCTION = "removed_production"
CAME_BACK_EVICTED = "came_back_evicted"

CUSTOM_EVENT = "custom"


class ScoringRuleTable:
    """
    In-memory view over a set of scoring rules.

    Built once per computation from whatever rules were loaded (defaults plus
    one pool's overrides, typically). Lookups never raise: a missing rule is
    worth 0 points and produces a MissingRuleWarning.
    """

    def __init__(self, rules: list[ScoringRule], pool_id: int | None = None):
        self.pool_id = pool_id
        self._by_id: dict[int, ScoringRule] = {}
        self._by_key: dict[tuple[int | None, str, str], ScoringRule] = {}
        self._by_subcategory: dict[tuple[int | None, str], ScoringRule] = {}
        self._warned: set[tuple] = set()

        for rule in sorted(rules, key=lambda r: (r.id is None, r.id or 0)):
            if rule.id is not None:
                self._by_id[rule.id] = rule
            if not rule.is_active:
                continue

            key = (rule.pool_id, rule.category, rule.subcategory)
            existing = self._by_key.get(key)
            if existing is not None:
                # Lowest id wins so the outcome never depends on load order
                logger.warning(
                    "%s: duplicate active rule for %s/%s (pool %s): keeping rule %s, ignoring rule %s",
                    ConfigurationError.__name__, rule.category, rule.subcategory,
                    rule.pool_id, existing.id, rule.id,
                )
                continue
            self._by_key[key] = rule

            sub_key = (rule.pool_id, rule.subcategory)
            current = self._by_subcategory.get(sub_key)
            if current is None or (rule.sort_order or 0) < (current.sort_order or 0):
                self._by_subcategory[sub_key] = rule

    def _pool(self, pool_id: int | None) -> int | None:
        return self.pool_id if pool_id is None else pool_id

    def find_rule(self, category: str, subcategory: str, pool_id: int | None = None) -> ScoringRule | None:
        pool_id = self._pool(pool_id)
        if pool_id is not None:
            rule = self._by_key.get((pool_id, category, subcategory))
            if rule is not None:
                return rule
        return self._by_key.get((None, category, subcategory))

    def has_rule(self, category: str, subcategory: str, pool_id: int | None = None) -> bool:
        return self.find_rule(category, subcategory, pool_id) is not None

    def get_points(self, category: str, subcategory: str, pool_id: int | None = None) -> int:
        """Points for (category, subcategory), preferring the pool's own rule over the default."""
        rule = self.find_rule(category, subcategory, pool_id)
        if rule is None:
            self._warn_missing(category, subcategory, self._pool(pool_id))
            return 0
        return int(rule.points)

    def optional_points(self, category: str, subcategory: str, pool_id: int | None = None) -> int | None:
        """Like get_points, but None (and no warning) when the pool never defined the rule."""
        rule = self.find_rule(category, subcategory, pool_id)
        return None if rule is None else int(rule.points)

    def rule_for_subcategory(self, subcategory: str, pool_id: int | None = None) -> ScoringRule | None:
        pool_id = self._pool(pool_id)
        if pool_id is not None:
            rule = self._by_subcategory.get((pool_id, subcategory))
            if rule is not None:
                return rule
        return self._by_subcategory.get((None, subcategory))

    def points_for_subcategory(self, subcategory: str, pool_id: int | None = None) -> int:
        rule = self.rule_for_subcategory(subcategory, pool_id)
        if rule is None:
            self._warn_missing("*", subcategory, self._pool(pool_id))
            return 0
        return int(rule.points)

    def resolve_identifier(self, event_type: str | int | None) -> str | None:
        """
        Map a stored special-event identifier to a subcategory.

        Identifiers are either a reference to a rule (its id, possibly as a
        string) or the subcategory itself.
        """
        if event_type is None or event_type == "":
            return None
        if isinstance(event_type, int) or str(event_type).isdigit():
            rule = self._by_id.get(int(event_type))
            return rule.subcategory if rule is not None else None
        return str(event_type)

    def points_for_identifier(self, event_type: str | int, pool_id: int | None = None) -> int:
        subcategory = self.resolve_identifier(event_type)
        if subcategory is None:
            self._warn_missing("?", str(event_type), self._pool(pool_id))
            return 0
        if isinstance(event_type, int) or str(event_type).isdigit():
            referenced = self._by_id[int(event_type)]
            if referenced.is_active:
                return int(referenced.points)
        return self.points_for_subcategory(subcategory, pool_id)

    def _warn_missing(self, category: str, subcategory: str, pool_id: int | None) -> None:
        key = (category, subcategory, pool_id)
        if key in self._warned:
            return
        self._warned.add(key)
        message = f"No active scoring rule for {category}/{subcategory} (pool {pool_id}); using 0 points"
        logger.warning(message)
        warnings.warn(message, MissingRuleWarning, stacklevel=3)


async def get_pool_rules(db: AsyncSession, pool_id: int, active_only: bool = False) -> list[ScoringRule]:
    """Defaults plus the pool's own rules, ordered for display."""
    query = select(ScoringRule).where(
        or_(ScoringRule.pool_id == pool_id, ScoringRule.pool_id.is_(None))
    )
    if active_only:
        query = query.where(ScoringRule.is_active == True)  # noqa: E712
    result = await db.execute(query.order_by(ScoringRule.sort_order, ScoringRule.id))
    return list(result.scalars().all())


async def load_rule_table(db: AsyncSession, pool_id: int) -> ScoringRuleTable:
    # Inactive rules are kept so old special events that reference them still resolve
    rules = await get_pool_rules(db, pool_id)
    return ScoringRuleTable(rules, pool_id=pool_id)
