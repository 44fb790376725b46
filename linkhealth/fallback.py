"""
Fallback Content

Fixed editorial substitutes per category, available with no network.
"""

from __future__ import annotations
from typing import Dict, List, Optional, Tuple
from datetime import datetime, timezone

from .contracts import FallbackArticle, SourceCategory
from .registry import CategoryArg, parse_category


EDITORIAL_SOURCE = "Editorial Analysis"

# (title, excerpt, url)
_FALLBACK_ARTICLES: Dict[SourceCategory, Tuple[Tuple[str, str, str], ...]] = {
    SourceCategory.HEALTHCARE: (
        (
            "2025 Healthcare Automation Market Reaches $80.38B",
            "Healthcare automation market grows at 10.8% CAGR, driven by AI adoption and efficiency demands.",
            "/blog/healthcare-automation-market-2025",
        ),
    ),
    SourceCategory.FINANCE: (
        (
            "Financial Automation Market Hits $18.4B by 2030",
            "14.6% CAGR growth in financial automation as 82% of CFOs increase investments.",
            "/blog/financial-automation-growth-2025",
        ),
    ),
    SourceCategory.REAL_ESTATE: (
        (
            "Real Estate AI Market Soars to $303.06B in 2025",
            "36.1% CAGR growth in real estate AI solutions transforms property management.",
            "/blog/real-estate-ai-market-2025",
        ),
    ),
    SourceCategory.AI_AUTOMATION: (
        (
            "Workflow Automation Moves From Pilot to Production",
            "Most automation programs now report measurable ROI within the first year of rollout.",
            "/blog/workflow-automation-production-2025",
        ),
    ),
}


def generate_fallback_content(
    category: CategoryArg,
    now: Optional[datetime] = None
) -> List[FallbackArticle]:
    """
    Editorial substitutes for a category.

    "All" (or None) returns every category's set; unknown categories
    return an empty list.
    """
    try:
        wanted = parse_category(category)
    except ValueError:
        return []

    publish_date = now or datetime.now(timezone.utc)
    categories = [wanted] if wanted is not None else list(SourceCategory)

    return [
        FallbackArticle(
            title=title,
            excerpt=excerpt,
            url=url,
            source=EDITORIAL_SOURCE,
            publish_date=publish_date,
            category=cat
        )
        for cat in categories
        for title, excerpt, url in _FALLBACK_ARTICLES.get(cat, ())
    ]
