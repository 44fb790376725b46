"""
Trusted Source Registry

Static trust tables: content sources and per-domain authority scores.
Seeded at construction, read-only afterwards, never needs the network.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Iterator, Union
from urllib.parse import urlsplit
import json
from pathlib import Path

from .contracts import TrustedSourceRecord, SourceCategory


ALL_CATEGORIES = "All"

CategoryArg = Optional[Union[str, SourceCategory]]


DEFAULT_AUTHORITY_SCORES: Dict[str, int] = {
    'mckinsey.com': 95,
    'deloitte.com': 92,
    'gartner.com': 94,
    'pwc.com': 90,
    'accenture.com': 88,
    'mit.edu': 96,
    'harvard.edu': 96,
    'stanford.edu': 95,
    'ieee.org': 93,
    'nature.com': 94,
    'techcrunch.com': 82,
    'venturebeat.com': 78,
    'healthcarefinancenews.com': 78,
    'modernhealthcare.com': 80,
    'americanbanker.com': 79,
    'inman.com': 72,
    'forbes.com': 85,
    'bloomberg.com': 88,
    'reuters.com': 87,
    'wsj.com': 89,
    'ft.com': 86,
}


DEFAULT_SOURCES = (
    TrustedSourceRecord(
        id='mckinsey',
        display_name='McKinsey & Company',
        domain='mckinsey.com',
        feed_url='https://www.mckinsey.com/feed/automation',
        base_authority_score=95,
        category=SourceCategory.AI_AUTOMATION,
    ),
    TrustedSourceRecord(
        id='deloitte',
        display_name='Deloitte Insights',
        domain='deloitte.com',
        feed_url='https://www2.deloitte.com/insights/feed.rss',
        base_authority_score=92,
        category=SourceCategory.FINANCE,
    ),
    TrustedSourceRecord(
        id='gartner',
        display_name='Gartner Research',
        domain='gartner.com',
        feed_url='https://www.gartner.com/en/newsroom/rss',
        base_authority_score=94,
        category=SourceCategory.AI_AUTOMATION,
    ),
    TrustedSourceRecord(
        id='healthcare-finance',
        display_name='Healthcare Finance',
        domain='healthcarefinancenews.com',
        feed_url='https://www.healthcarefinancenews.com/rss.xml',
        base_authority_score=78,
        category=SourceCategory.HEALTHCARE,
    ),
)


def parse_category(value: CategoryArg) -> Optional[SourceCategory]:
    """
    Resolve a category argument.

    None and "All" mean no filter. Accepts enum members, values
    ("Real Estate") and names ("REAL_ESTATE"). Raises ValueError otherwise.
    """
    if value is None or value == ALL_CATEGORIES:
        return None
    if isinstance(value, SourceCategory):
        return value
    try:
        return SourceCategory(value)
    except ValueError:
        pass
    try:
        return SourceCategory[str(value).upper().replace(' ', '_')]
    except KeyError:
        raise ValueError(f"Unknown category: {value}")


def hostname_of(url_or_domain: str) -> str:
    """Lower-cased host of a URL, or the input itself if it is a bare domain."""
    candidate = url_or_domain.strip()
    try:
        host = urlsplit(candidate).hostname
        if host is None:
            host = urlsplit(f"//{candidate}").hostname or ""
    except ValueError:
        return ""
    return host.lower().rstrip('.')


@dataclass
class TrustedSourceRegistry:
    """
    Registry of trusted sources and domain authority.

    Authority lookups walk up the host name so that subdomains inherit
    their registered domain's score (www.mckinsey.com -> mckinsey.com).
    """

    _sources: Dict[str, TrustedSourceRecord]
    _authority: Dict[str, int]

    @classmethod
    def default(cls) -> 'TrustedSourceRegistry':
        return cls.from_records(DEFAULT_SOURCES)

    @classmethod
    def from_records(
        cls,
        records,
        authority_scores: Optional[Dict[str, int]] = None
    ) -> 'TrustedSourceRegistry':
        sources = {}
        authority = dict(DEFAULT_AUTHORITY_SCORES if authority_scores is None else authority_scores)

        for record in records:
            sources[record.id] = record
            authority[record.domain.lower()] = record.base_authority_score

        return cls(_sources=sources, _authority=authority)

    @classmethod
    def load(cls, config_path: Path) -> 'TrustedSourceRegistry':
        """Load registry from a JSON file with "sources" and optional "authority"."""
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)

        records = []
        for source_data in config.get('sources', []):
            records.append(TrustedSourceRecord(
                id=source_data['id'],
                display_name=source_data['name'],
                domain=source_data['domain'],
                feed_url=source_data['feed_url'],
                base_authority_score=int(source_data['authority']),
                category=parse_category(source_data['category']),
                active=source_data.get('active', True)
            ))

        authority = None
        if 'authority' in config:
            authority = {k.lower(): int(v) for k, v in config['authority'].items()}

        return cls.from_records(records, authority)

    def get(self, source_id: str) -> Optional[TrustedSourceRecord]:
        return self._sources.get(source_id)

    def all_sources(self) -> Iterator[TrustedSourceRecord]:
        yield from self._sources.values()

    def trusted_sources(self, category: CategoryArg = None) -> List[TrustedSourceRecord]:
        """Active sources, optionally restricted to one category."""
        try:
            wanted = parse_category(category)
        except ValueError:
            return []

        return [
            source for source in self._sources.values()
            if source.active and (wanted is None or source.category == wanted)
        ]

    def authority_for(self, url_or_domain: str) -> int:
        """Authority score of a URL or domain; 0 when unmapped."""
        host = hostname_of(url_or_domain)
        labels = host.split('.') if host else []

        # Stop before the bare TLD
        for i in range(max(len(labels) - 1, 0)):
            score = self._authority.get('.'.join(labels[i:]))
            if score is not None:
                return score
        return 0

    @property
    def total_count(self) -> int:
        return len(self._sources)

    def stats(self) -> dict:
        return {
            'total': self.total_count,
            'active': sum(1 for s in self._sources.values() if s.active),
            'domains_scored': len(self._authority),
            'by_category': {
                cat.value: sum(1 for s in self._sources.values() if s.category == cat)
                for cat in SourceCategory
            }
        }
