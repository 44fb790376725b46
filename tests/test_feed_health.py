"""
Feed Health Tests

A feed is judged by how many of its first items link somewhere reachable.
"""

import asyncio

import pytest

from linkhealth.cache import LinkHealthCache, classify_feed
from linkhealth.contracts import FeedStatus, LinkCacheConfig, ProbeResult
from linkhealth.feeds import FeedParseError, parse_feed_items
from linkhealth.prober import ProbeError

from .fixtures import FakeClock, FakeProber, RecordingSleep, rss_document


FEED_URL = "https://www.example.com/feed.rss"

ATOM_DOCUMENT = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example</title>
  <entry>
    <title>First</title>
    <link rel="edit" href="https://example.com/edit/1"/>
    <link rel="alternate" href="https://example.com/posts/1"/>
  </entry>
  <entry>
    <title>No link</title>
  </entry>
  <entry>
    <title>Second</title>
    <link href="https://example.com/posts/2"/>
  </entry>
</feed>"""


def links(count):
    return [f"https://example.com/posts/{i}" for i in range(count)]


def feed_cache(prober):
    return LinkHealthCache(
        prober, config=LinkCacheConfig(), clock=FakeClock(), sleep=RecordingSleep()
    )


class TestClassification:

    @pytest.mark.parametrize("valid,total,status", [
        (10, 10, FeedStatus.HEALTHY),
        (9, 10, FeedStatus.HEALTHY),
        (8, 10, FeedStatus.WARNING),
        (7, 10, FeedStatus.WARNING),
        (5, 10, FeedStatus.CRITICAL),
        (3, 10, FeedStatus.CRITICAL),
        (2, 10, FeedStatus.OFFLINE),
        (0, 0, FeedStatus.OFFLINE),
    ])
    def test_thresholds(self, valid, total, status):
        assert classify_feed(valid, total) == status


class TestFeedParsing:

    def test_rss_items(self):
        items = parse_feed_items(rss_document(links(3)))
        assert [item.link for item in items] == links(3)
        assert items[0].title == "Item 0"

    def test_atom_prefers_alternate_link(self):
        items = parse_feed_items(ATOM_DOCUMENT)
        assert [item.link for item in items] == [
            "https://example.com/posts/1", "https://example.com/posts/2"
        ]
        assert items[0].title == "First"

    def test_invalid_xml(self):
        with pytest.raises(FeedParseError):
            parse_feed_items("<rss><channel>")


class TestValidateFeed:

    def test_healthy_feed(self):
        urls = links(10)
        prober = FakeProber(
            responses={urls[0]: ProbeResult(404, urls[0], False)},
            feeds={FEED_URL: (200, rss_document(urls))}
        )
        health = asyncio.run(feed_cache(prober).validate_feed(FEED_URL))

        assert health.status == FeedStatus.HEALTHY
        assert health.total_items == 10
        assert health.valid_items == 9
        assert health.uptime == pytest.approx(90.0)
        assert health.errors == ("HTTP 404",)

    def test_only_first_items_are_sampled(self):
        urls = links(15)
        prober = FakeProber(feeds={FEED_URL: (200, rss_document(urls))})
        health = asyncio.run(feed_cache(prober).validate_feed(FEED_URL))

        assert health.total_items == 15
        assert sorted(prober.calls) == sorted(urls[:10])

    def test_mostly_broken_feed_is_critical(self):
        urls = links(10)
        responses = {u: ProbeResult(500, u, False) for u in urls[:6]}
        prober = FakeProber(responses=responses, feeds={FEED_URL: (200, rss_document(urls))})

        health = asyncio.run(feed_cache(prober).validate_feed(FEED_URL))

        assert health.status == FeedStatus.CRITICAL
        assert health.valid_items == 4

    @pytest.mark.parametrize("response", [
        ProbeError("Request timed out"),
        (503, "Service Unavailable"),
        (200, "this is not xml"),
    ])
    def test_unreachable_or_unparseable_feed_is_offline(self, response):
        prober = FakeProber(feeds={FEED_URL: response})
        cache = feed_cache(prober)

        health = asyncio.run(cache.validate_feed(FEED_URL))

        assert health.status == FeedStatus.OFFLINE
        assert health.total_items == 0
        assert health.uptime == 0.0
        assert len(health.errors) == 1
        assert cache.get_feed_health(FEED_URL) is health

    def test_empty_feed_is_offline(self):
        prober = FakeProber(feeds={FEED_URL: (200, rss_document([]))})
        health = asyncio.run(feed_cache(prober).validate_feed(FEED_URL))

        assert health.status == FeedStatus.OFFLINE
        assert prober.calls == []

    def test_item_verdicts_are_shared_with_link_cache(self):
        urls = links(2)
        prober = FakeProber(feeds={FEED_URL: (200, rss_document(urls))})
        cache = feed_cache(prober)

        asyncio.run(cache.validate_feed(FEED_URL))

        assert cache.get_cached_result(urls[0]).valid
        assert cache.get_feed_health("https://unknown.example.com/feed") is None
