"""
Feed Parsing

Extracts item links from RSS 2.0 and Atom documents so that a
feed's health can be judged by the reachability of what it links to.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional
import xml.etree.ElementTree as ET


ATOM_NS = {'atom': 'http://www.w3.org/2005/Atom'}


class FeedParseError(Exception):
    """The document is not parseable XML."""


@dataclass(frozen=True)
class FeedItem:
    title: str
    link: str


def _text(elem: ET.Element, tag: str, ns: Optional[dict] = None) -> str:
    child = elem.find(tag, ns) if ns else elem.find(tag)
    if child is not None and child.text:
        return child.text.strip()
    return ''


def _atom_link(entry: ET.Element) -> str:
    links = entry.findall('atom:link', ATOM_NS) or entry.findall('link')
    for link_elem in links:
        if link_elem.get('rel', 'alternate') == 'alternate' and link_elem.get('href'):
            return link_elem.get('href', '')
    for link_elem in links:
        if link_elem.get('href'):
            return link_elem.get('href', '')
    return ''


def parse_feed_items(raw: str) -> List[FeedItem]:
    """Parse RSS/Atom text into items; items without a link are skipped."""
    try:
        root = ET.fromstring(raw.strip())
    except ET.ParseError as e:
        raise FeedParseError(f"Feed parsing failed: {e}")

    items = []

    if root.tag == 'feed' or root.tag.endswith('}feed'):
        entries = root.findall('atom:entry', ATOM_NS) or root.findall('entry')
        for entry in entries:
            link = _atom_link(entry)
            if not link:
                continue
            title = _text(entry, 'atom:title', ATOM_NS) or _text(entry, 'title')
            items.append(FeedItem(title=title, link=link))
        return items

    channel = root.find('channel')
    if channel is None:
        channel = root

    for item in channel.findall('item'):
        link = _text(item, 'link')
        if not link:
            continue
        items.append(FeedItem(title=_text(item, 'title'), link=link))

    return items
