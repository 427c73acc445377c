"""RSS, sitemap and robots.txt bodies.

Dates come from the posts themselves, never from the clock, so two
renders of the same content are byte-identical.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time
from email.utils import format_datetime
from xml.sax.saxutils import escape

from pressroom.content.models import ContentRecord, TagSummary
from pressroom.site.pages import markdown_to_html, tag_path


def _rfc822(day: date) -> str:
    return format_datetime(datetime.combine(day, time.min, tzinfo=UTC), usegmt=True)


def _cdata(text: str) -> str:
    # "]]>" cannot appear inside one CDATA section.
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def build_rss(
    posts: list[ContentRecord],
    *,
    title: str,
    description: str,
    base_url: str,
    language: str = "en-us",
    limit: int = 20,
) -> str:
    """RSS 2.0 feed of the newest *limit* posts (expects newest-first input)."""
    items: list[str] = []
    for post in posts[:limit]:
        url = f"{base_url}{post.path}"
        lines = [
            "    <item>",
            f"      <title>{escape(post.title)}</title>",
            f"      <link>{escape(url)}</link>",
            f'      <guid isPermaLink="true">{escape(url)}</guid>',
            f"      <pubDate>{_rfc822(post.date)}</pubDate>",
        ]
        if post.excerpt:
            lines.append(f"      <description>{escape(post.excerpt)}</description>")
        for tag in post.tags:
            lines.append(f"      <category>{escape(tag)}</category>")
        lines.append(f"      <content:encoded>{_cdata(markdown_to_html(post.body))}</content:encoded>")
        lines.append("    </item>")
        items.append("\n".join(lines))

    last_build = _rfc822(posts[0].date) if posts else ""
    header = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/"'
        ' xmlns:atom="http://www.w3.org/2005/Atom">',
        "  <channel>",
        f"    <title>{escape(title)}</title>",
        f"    <link>{escape(base_url)}/</link>",
        f"    <description>{escape(description)}</description>",
        f"    <language>{escape(language)}</language>",
    ]
    if last_build:
        header.append(f"    <lastBuildDate>{last_build}</lastBuildDate>")
    header.append(
        f'    <atom:link href="{escape(base_url)}/feed.xml" rel="self" type="application/rss+xml" />'
    )
    footer = ["  </channel>", "</rss>", ""]
    return "\n".join(header + items + footer)


def _change_freq(path: str) -> str:
    if path == "/":
        return "daily"
    if path.startswith("/tags/"):
        return "weekly"
    return "monthly"


def build_sitemap(posts: list[ContentRecord], tags: list[TagSummary], *, base_url: str) -> str:
    """Sitemap listing the index, every post and every tag page."""
    newest = posts[0].date if posts else None
    entries: list[tuple[str, str, str]] = [("/", newest.isoformat() if newest else "", "1.0")]
    for post in sorted(posts, key=lambda p: p.path):
        entries.append((post.path, (post.modified or post.date).isoformat(), "0.9"))
    tag_pages: dict[str, str] = {}
    for tag in tags:
        path = tag_path(tag.name)
        dates = [(p.modified or p.date).isoformat() for p in posts if tag.name in p.tags]
        tag_pages[path] = max([tag_pages.get(path, ""), *dates])
    entries.extend((path, lastmod, "0.6") for path, lastmod in sorted(tag_pages.items()))

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
    ]
    for path, lastmod, priority in entries:
        lines.append("  <url>")
        lines.append(f"    <loc>{escape(base_url + path)}</loc>")
        if lastmod:
            lines.append(f"    <lastmod>{lastmod}</lastmod>")
        lines.append(f"    <changefreq>{_change_freq(path)}</changefreq>")
        lines.append(f"    <priority>{priority}</priority>")
        lines.append("  </url>")
    lines.extend(["</urlset>", ""])
    return "\n".join(lines)


def build_robots(base_url: str) -> str:
    return f"User-agent: *\nAllow: /\n\nSitemap: {base_url}/sitemap.xml\n"
