"""
Default scoring rules seeder.
Creates the standard rule set shared by every pool (pool_id NULL). A pool
overrides any of them by adding its own rule for the same key via the API.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from poolside.models.models import ScoringRule
from poolside.services import scoring_rules as sr

logger = logging.getLogger(__name__)


# Nominee, replacement, saved-by-veto, survival and the achievement rules are
# deliberately absent: those roles score nothing until a pool adds a rule.
DEFAULT_RULES = [
    {"category": sr.COMPETITION, "subcategory": sr.HOH_WINNER, "points": 10, "emoji": "\U0001F3C6", "description": "Head of Household Winner", "sort_order": 1},
    {"category": sr.COMPETITION, "subcategory": sr.POV_WINNER, "points": 7, "emoji": "\U0001F6AB", "description": "Power of Veto Winner", "sort_order": 2},
    {"category": sr.WEEKLY, "subcategory": sr.BB_ARENA_WINNER, "points": 5, "emoji": "\U0001F3DF", "description": "Won BB Arena (Safety from Eviction)", "sort_order": 3},
    {"category": sr.WEEKLY, "subcategory": sr.EVICTED, "points": -5, "emoji": "\U0001F44B", "description": "Evicted", "sort_order": 4},
    {"category": sr.JURY, "subcategory": sr.JURY_MEMBER, "points": 5, "emoji": "⚖", "description": "Made Jury", "sort_order": 5},
    {"category": sr.FINAL_PLACEMENT, "subcategory": sr.WINNER, "points": 25, "emoji": "\U0001F451", "description": "Season Winner", "sort_order": 6},
    {"category": sr.FINAL_PLACEMENT, "subcategory": sr.RUNNER_UP, "points": 15, "emoji": "\U0001F948", "description": "Runner-up", "sort_order": 7},
    {"category": sr.FINAL_PLACEMENT, "subcategory": sr.AMERICAS_FAVORITE, "points": 10, "emoji": "\U0001F31F", "description": "America's Favorite Player", "sort_order": 8},
    {"category": sr.SPECIAL_EVENTS, "subcategory": sr.SELF_EVICTED, "points": -10, "emoji": "\U0001F6AA", "description": "Self-Evicted/Quit", "sort_order": 9},
    {"category": sr.SPECIAL_EVENTS, "subcategory": sr.REMOVED_PRODUCTION, "points": -5, "emoji": "❌", "description": "Removed by Production", "sort_order": 10},
    {"category": sr.SPECIAL_EVENTS, "subcategory": sr.CAME_BACK_EVICTED, "points": 5, "emoji": "↩", "description": "Came Back After Evicted", "sort_order": 11},
    {"category": sr.SPECIAL_EVENTS, "subcategory": "won_special_power", "points": 5, "emoji": "\U0001F52E", "description": "Won Special Power/Advantage", "sort_order": 12},
    {"category": sr.SPECIAL_EVENTS, "subcategory": "used_special_power", "points": 3, "emoji": "⚡", "description": "Used Special Power", "sort_order": 13},
    {"category": sr.SPECIAL_EVENTS, "subcategory": "won_safety_comp", "points": 5, "emoji": "\U0001F512", "description": "Won Safety Competition", "sort_order": 14},
    {"category": sr.SPECIAL_EVENTS, "subcategory": "won_prize", "points": 2, "emoji": "\U0001F381", "description": "Won Prize/Reward", "sort_order": 15},
    {"category": sr.SPECIAL_EVENTS, "subcategory": "in_showmance", "points": 2, "emoji": "\U0001F495", "description": "In a Showmance", "sort_order": 16},
    {"category": sr.SPECIAL_EVENTS, "subcategory": "costume_punishment", "points": 2, "emoji": "\U0001F921", "description": "Costume Punishment", "sort_order": 17},
    {"category": sr.SPECIAL_EVENTS, "subcategory": "received_penalty", "points": -2, "emoji": "⚠", "description": "Received Penalty/Punishment", "sort_order": 18},
]


async def seed_default_rules(db: AsyncSession, pool_id: int | None = None) -> list[ScoringRule]:
    """
    Create the default rule set. With no pool_id this seeds the shared
    defaults; keys that already have an active rule in that scope are skipped,
    so seeding twice is harmless. Returns created rules.
    """
    result = await db.execute(
        select(ScoringRule.category, ScoringRule.subcategory).where(
            ScoringRule.pool_id.is_(None) if pool_id is None else ScoringRule.pool_id == pool_id,
            ScoringRule.is_active == True,  # noqa: E712
        )
    )
    existing = {(row.category, row.subcategory) for row in result}

    created = []
    for rule_data in DEFAULT_RULES:
        if (rule_data["category"], rule_data["subcategory"]) in existing:
            continue
        rule = ScoringRule(pool_id=pool_id, **rule_data)
        db.add(rule)
        created.append(rule)
    await db.flush()
    if created:
        logger.info("Seeded %d scoring rules (pool %s)", len(created), pool_id)
    return created


async def copy_rules_from_pool(db: AsyncSession, source_pool_id: int, target_pool_id: int) -> list[ScoringRule]:
    """
    Copy a pool's own rules to another pool.
    Handy for 'use last season's tweaks as a starting point'.
    """
    result = await db.execute(
        select(ScoringRule).where(ScoringRule.pool_id == source_pool_id).order_by(ScoringRule.sort_order, ScoringRule.id)
    )
    source_rules = result.scalars().all()

    created = []
    for source in source_rules:
        new_rule = ScoringRule(
            pool_id=target_pool_id,
            category=source.category,
            subcategory=source.subcategory,
            points=source.points,
            description=source.description,
            emoji=source.emoji,
            is_active=source.is_active,
            sort_order=source.sort_order,
        )
        db.add(new_rule)
        created.append(new_rule)
    await db.flush()
    return created
