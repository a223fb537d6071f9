"""
Scope expansion and scope work items.

A collection configuration stores scope dimensions such as
{"industry": [...], "country": [...]}. Their cross-product yields one
scope per queue job. Each scope owns an ordered list of work items
rendered from the visibility prompt templates below.
"""

from itertools import product
from typing import Dict, List, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from models.work_item import WorkItem
from core.exceptions import ConfigurationError, EmptyScopeError, PersistenceError
import logging

logger = logging.getLogger(__name__)

COUNTRY_CODES: Dict[str, str] = {
    "United States": "US",
    "United Kingdom": "GB",
    "Canada": "CA",
    "Australia": "AU",
    "Germany": "DE",
    "France": "FR",
    "Italy": "IT",
    "Spain": "ES",
    "Netherlands": "NL",
    "Sweden": "SE",
    "Norway": "NO",
    "Denmark": "DK",
    "Finland": "FI",
    "Switzerland": "CH",
    "Austria": "AT",
    "Belgium": "BE",
    "Ireland": "IE",
    "New Zealand": "NZ",
    "Singapore": "SG",
    "Japan": "JP",
    "South Korea": "KR",
    "China": "CN",
    "India": "IN",
    "Brazil": "BR",
    "Mexico": "MX",
    "Argentina": "AR",
    "South Africa": "ZA",
    "United Arab Emirates": "AE",
    "Saudi Arabia": "SA",
    "Global (All Countries)": "GLOBAL",
}

# (category, theme, template); {industry} and {location} are filled per scope
VISIBILITY_TEMPLATES = [
    ("Employee Experience", "Mission & Purpose",
     "What companies in {industry}{location} are known for having a strong, purpose-driven employer brand?"),
    ("Employee Experience", "Rewards & Recognition",
     "What companies in {industry}{location} are known for having exceptional rewards and recognition for employees?"),
    ("Employee Experience", "Company Culture",
     "What companies in {industry}{location} are known for outstanding workplace culture?"),
    ("Employee Experience", "Social Impact",
     "What companies in {industry}{location} are recognized for meaningful social impact and community engagement?"),
    ("Employee Experience", "Inclusion",
     "What companies in {industry}{location} are most recognized for diversity, equity, and inclusion?"),
    ("Employee Experience", "Innovation",
     "What companies in {industry}{location} are known for fostering innovation and creative thinking?"),
    ("Employee Experience", "Wellbeing & Balance",
     "What companies in {industry}{location} are recognized for exceptional employee wellbeing and work-life balance?"),
    ("Employee Experience", "Leadership",
     "What companies in {industry}{location} are respected for outstanding leadership and management?"),
    ("Employee Experience", "Security & Perks",
     "What companies in {industry}{location} are known for providing comprehensive benefits and job security?"),
    ("Employee Experience", "Career Opportunities",
     "What companies in {industry}{location} are most recognized for exceptional career development and progression opportunities?"),
    ("Candidate Experience", "Application Process",
     "What companies in {industry}{location} have the best application process?"),
    ("Candidate Experience", "Candidate Communication",
     "What companies in {industry}{location} are recognized for strong candidate communication?"),
    ("Candidate Experience", "Interview Experience",
     "What companies in {industry}{location} have the best interview experience?"),
    ("Candidate Experience", "Candidate Feedback",
     "What companies in {industry}{location} are known for providing valuable candidate feedback?"),
    ("Candidate Experience", "Onboarding Experience",
     "What companies in {industry}{location} have the best onboarding experience?"),
    ("Candidate Experience", "Overall Candidate Experience",
     "What companies in {industry}{location} have the best overall candidate reputation?"),
]


def normalize_country(value: str) -> str:
    return COUNTRY_CODES.get(value, value)


def expand_scope(scope_dimensions: Dict[str, List[str]], config_id: int = 0) -> List[Dict[str, str]]:
    """
    Cross-product of the scope dimensions, in dimension insertion order.

    Raises:
        EmptyScopeError: If there are no dimensions or any list is empty
    """
    if not scope_dimensions or any(not values for values in scope_dimensions.values()):
        raise EmptyScopeError(
            "Configuration has empty scope lists",
            context={"config_id": config_id, "scope_dimensions": scope_dimensions}
        )

    names = list(scope_dimensions.keys())
    value_lists = []
    for name in names:
        values = scope_dimensions[name]
        if name == "country":
            values = [normalize_country(v) for v in values]
        value_lists.append(values)

    return [dict(zip(names, combo)) for combo in product(*value_lists)]


def scope_key(scope: Dict[str, Any]) -> str:
    return "|".join(f"{name}={value}" for name, value in scope.items())


def entity_scope_key(entity_id: int) -> str:
    return f"entity:{entity_id}"


def render_prompts(scope: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Render the visibility templates for one scope.

    Raises:
        ConfigurationError: If the scope has no industry
    """
    industry = scope.get("industry")
    if not industry:
        raise ConfigurationError("Scope has no industry", context={"scope": scope})

    country = scope.get("country")
    location = f" in {country}" if country and country != "GLOBAL" else ""

    return [
        {
            "category": category,
            "theme": theme,
            "prompt_text": template.format(industry=industry, location=location),
            "industry_context": industry,
            "location_context": country,
        }
        for category, theme, template in VISIBILITY_TEMPLATES
    ]


class ScopeCatalog:
    """Get-or-create of the ordered work items belonging to a queue scope"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def ensure_work_items(self, scope: Dict[str, Any]) -> List[WorkItem]:
        key = scope_key(scope)
        prompts = render_prompts(scope)

        insert = pg_insert if self.db.get_bind().dialect.name == "postgresql" else sqlite_insert
        rows = [
            {
                **prompt,
                "scope_key": key,
                "entity_id": None,
                "prompt_type": "visibility",
                "is_active": True,
            }
            for prompt in prompts
        ]
        stmt = insert(WorkItem).values(rows).on_conflict_do_nothing(
            index_elements=["scope_key", "prompt_text"]
        )
        try:
            await self.db.execute(stmt)
            await self.db.commit()
            result = await self.db.execute(select(WorkItem).where(WorkItem.scope_key == key))
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                "Failed to load work items for scope",
                context={"scope_key": key, "operation": "ensure_work_items", "table_name": "work_items"},
                original_exception=e
            )
        by_text = {item.prompt_text: item for item in result.scalars().all()}

        ordered = [by_text[p["prompt_text"]] for p in prompts if p["prompt_text"] in by_text]
        logger.debug(f"Scope {key} has {len(ordered)} work items")
        return ordered

    async def add_entity_prompts(self, entity_id: int, prompts: List[str]) -> List[WorkItem]:
        """Get-or-create the confirmed prompts of one entity, in the given order"""
        prompts = list(dict.fromkeys(prompts))
        key = entity_scope_key(entity_id)

        insert = pg_insert if self.db.get_bind().dialect.name == "postgresql" else sqlite_insert
        rows = [
            {
                "scope_key": key,
                "entity_id": entity_id,
                "prompt_text": text,
                "prompt_type": "sentiment",
                "is_active": True,
            }
            for text in prompts
        ]
        await self.db.execute(
            insert(WorkItem).values(rows).on_conflict_do_nothing(index_elements=["scope_key", "prompt_text"])
        )
        await self.db.commit()

        result = await self.db.execute(
            select(WorkItem).where(WorkItem.scope_key == key, WorkItem.prompt_text.in_(prompts))
        )
        by_text = {item.prompt_text: item for item in result.scalars().all()}
        return [by_text[text] for text in prompts if text in by_text]
