"""Tests for RSS, sitemap and robots output."""

from datetime import date
from xml.etree import ElementTree

import feedparser

from pressroom.content.services import PostLibrary
from pressroom.site.feeds import build_robots, build_rss, build_sitemap

_BASE = "https://blog.example.com"


class TestBuildRss:
    def test_is_valid_xml_with_items(self, sample_records):
        posts = PostLibrary(sample_records).posts()
        xml = build_rss(posts, title="Blog", description="Desc", base_url=_BASE)
        root = ElementTree.fromstring(xml)
        items = root.findall("./channel/item")
        assert [i.findtext("title") for i in items] == ["Third Post", "Second Post", "Hello World"]

    def test_limit(self, sample_records):
        posts = PostLibrary(sample_records).posts()
        xml = build_rss(posts, title="Blog", description="Desc", base_url=_BASE, limit=1)
        assert xml.count("<item>") == 1

    def test_dates_come_from_posts(self, make_record):
        xml = build_rss(
            [make_record("a", day=date(2024, 5, 6))], title="B", description="D", base_url=_BASE
        )
        assert "<pubDate>Mon, 06 May 2024 00:00:00 GMT</pubDate>" in xml
        assert "<lastBuildDate>Mon, 06 May 2024 00:00:00 GMT</lastBuildDate>" in xml

    def test_escapes_titles(self, make_record):
        xml = build_rss([make_record("a", title="Fish & Chips")], title="B", description="D", base_url=_BASE)
        assert "Fish &amp; Chips" in xml

    def test_readable_by_feed_readers(self, sample_records):
        posts = PostLibrary(sample_records).posts()
        xml = build_rss(posts, title="Blog", description="Desc", base_url=_BASE)
        feed = feedparser.parse(xml.encode("utf-8"))
        assert feed.feed.title == "Blog"
        assert [e.link for e in feed.entries] == [
            f"{_BASE}/posts/third-post",
            f"{_BASE}/posts/second-post",
            f"{_BASE}/posts/hello-world",
        ]
        assert feed.entries[-1].summary == "First post"
        assert feed.entries[0].published_parsed[:3] == (2025, 3, 1)

    def test_cdata_terminator_in_body(self, make_record):
        body = "<div>end marker ]]> inside</div>\n"
        xml = build_rss([make_record("raw", body=body)], title="Blog", description="Desc", base_url=_BASE)

        encoded = ElementTree.fromstring(xml).find(
            "channel/item/{http://purl.org/rss/1.0/modules/content/}encoded"
        )
        assert "end marker ]]> inside" in encoded.text

        feed = feedparser.parse(xml.encode("utf-8"))
        assert [e.link for e in feed.entries] == [f"{_BASE}/posts/raw"]
        assert "inside" in feed.entries[0].content[0].value

    def test_deterministic(self, sample_records):
        posts = PostLibrary(sample_records).posts()
        first = build_rss(posts, title="B", description="D", base_url=_BASE)
        assert build_rss(posts, title="B", description="D", base_url=_BASE) == first


class TestBuildSitemap:
    def test_lists_index_posts_and_tags(self, sample_records):
        lib = PostLibrary(sample_records)
        xml = build_sitemap(lib.posts(), lib.tags(), base_url=_BASE)
        locs = [e.text for e in ElementTree.fromstring(xml).iter("{http://www.sitemaps.org/schemas/sitemap/0.9}loc")]
        assert locs == [
            f"{_BASE}/",
            f"{_BASE}/posts/hello-world",
            f"{_BASE}/posts/second-post",
            f"{_BASE}/posts/third-post",
            f"{_BASE}/tags/python",
            f"{_BASE}/tags/web",
        ]

    def test_modified_date_used_for_lastmod(self, make_record):
        post = make_record("a", day=date(2025, 1, 1), modified=date(2025, 6, 1))
        xml = build_sitemap([post], [], base_url=_BASE)
        assert "<lastmod>2025-06-01</lastmod>" in xml


class TestBuildRobots:
    def test_points_at_sitemap(self):
        assert build_robots(_BASE) == f"User-agent: *\nAllow: /\n\nSitemap: {_BASE}/sitemap.xml\n"
