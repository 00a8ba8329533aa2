"""User context for the AI assistant.

Up to four sections (plan, timesheets, budgets, performance) are fetched
concurrently, each with its own timeout. A section that fails is left out;
building the context itself never fails.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.services.domain_summaries import (
    fetch_budget_summary,
    fetch_performance_summary,
    fetch_timesheet_summary,
)
from app.stores.base import ChunkStore, DocumentStore
from app.stores.postgres import PgVectorChunkStore, SqlDocumentStore

logger = logging.getLogger(__name__)

PLAN_COVERAGE_CHUNK_LIMIT = 200

SectionFetcher = Callable[[UUID, UUID | None], Awaitable[str | None]]

SECTION_TITLES = {
    "year_plan": "3-Year Plan",
    "timesheets": "Timesheets",
    "budgets": "Budgets",
    "performance": "Performance",
}


@dataclass
class AggregatedContext:
    sections: dict[str, str] = field(default_factory=dict)
    omitted: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.sections


async def summarize_year_plan(
    documents: DocumentStore,
    chunks: ChunkStore,
    user_id: UUID,
    organization_id: UUID | None,
) -> str | None:
    """Describe which plan years, months and weeks the acting user's year plan covers."""
    plan = await documents.find_year_plan(user_id, organization_id)
    if plan is None or not plan.is_ai_readable:
        return None

    addressed = await chunks.list_addressed(plan.id, PLAN_COVERAGE_CHUNK_LIMIT)
    if not addressed:
        return (
            f'3-Year Plan document "{plan.name}" is available '
            "but contains no structured content."
        )

    years = sorted({c.year for c in addressed if c.year is not None})
    months = {(c.year, c.month) for c in addressed if c.month is not None}
    weeks = {(c.year, c.month, c.week) for c in addressed if c.week is not None}
    year_list = ", ".join(str(y) for y in years) or "none"
    return (
        f'3-Year Plan document "{plan.name}" is available with:\n'
        f"- Years: {year_list}\n"
        f"- Months covered: {len(months)}\n"
        f"- Weeks covered: {len(weeks)}\n"
        "The plan can be used to answer questions about planned activities, goals, and timelines."
    )


class ContextAggregator:
    """Builds an AggregatedContext from independent section fetchers."""

    def __init__(self, sections: dict[str, SectionFetcher], timeout: float | None = None):
        self.sections = sections
        self.timeout = timeout or settings.context_section_timeout_seconds

    async def _fetch(
        self,
        name: str,
        fetcher: SectionFetcher,
        user_id: UUID,
        organization_id: UUID | None,
    ) -> str | None:
        try:
            return await asyncio.wait_for(fetcher(user_id, organization_id), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out fetching {name} context after {self.timeout}s")
        except Exception as e:
            logger.exception(f"Error fetching {name} context: {e}")
        return None

    async def build(self, user_id: UUID, organization_id: UUID | None = None) -> AggregatedContext:
        names = list(self.sections)
        results = await asyncio.gather(
            *(self._fetch(n, self.sections[n], user_id, organization_id) for n in names)
        )

        context = AggregatedContext()
        for name, value in zip(names, results):
            if value:
                context.sections[name] = value
            else:
                context.omitted.append(name)
        return context


def format_context_for_prompt(context: AggregatedContext, max_chars: int | None = None) -> str:
    """Render the context as a markdown block for a model prompt, or '' when empty."""
    max_chars = max_chars or settings.context_max_chars

    parts = []
    for name, title in SECTION_TITLES.items():
        if name in context.sections:
            parts.append(f"## {title}\n{context.sections[name]}")
    for name, value in context.sections.items():
        if name not in SECTION_TITLES:
            parts.append(f"## {name.replace('_', ' ').title()}\n{value}")

    if not parts:
        return ""

    body = "\n\n".join(parts)
    if len(body) > max_chars:
        body = body[: max_chars - 3].rstrip() + "..."
    return f"\n\n---\n\n**User Context:**\n\n{body}\n\n---\n\n"


def database_sections(
    session_factory: Callable[[], AsyncSession],
) -> dict[str, SectionFetcher]:
    """Section fetchers that each open their own database session."""

    async def year_plan(user_id: UUID, organization_id: UUID | None) -> str | None:
        async with session_factory() as session:
            return await summarize_year_plan(
                SqlDocumentStore(session), PgVectorChunkStore(session), user_id, organization_id
            )

    def with_session(fetch) -> SectionFetcher:
        async def run(user_id: UUID, organization_id: UUID | None) -> str | None:
            async with session_factory() as session:
                return await fetch(session, user_id, organization_id)

        return run

    return {
        "year_plan": year_plan,
        "timesheets": with_session(fetch_timesheet_summary),
        "budgets": with_session(fetch_budget_summary),
        "performance": with_session(fetch_performance_summary),
    }


def store_sections(documents: DocumentStore, chunks: ChunkStore) -> dict[str, SectionFetcher]:
    """Plan-only sections for running without a database."""

    async def year_plan(user_id: UUID, organization_id: UUID | None) -> str | None:
        return await summarize_year_plan(documents, chunks, user_id, organization_id)

    return {"year_plan": year_plan}
