"""HTML building blocks for the site.

Every page is split into an inner part (what lands in ``#content-area``)
and the document shell around it. Partial-navigation requests get the
inner part only; direct navigation gets both, with the inner part
embedded verbatim.
"""

from __future__ import annotations

from html import escape
from urllib.parse import quote

import markdown

from pressroom.content.models import ContentRecord, TagSummary, tag_segment

CONTENT_TARGET = "content-area"


def tag_path(tag: str) -> str:
    return f"/tags/{quote(tag_segment(tag), safe='')}"


def nav_link(path: str, label: str, css_class: str = "") -> str:
    """An anchor that works both as a plain link and as a partial-navigation trigger."""
    cls = f' class="{css_class}"' if css_class else ""
    return (
        f'<a href="{escape(path)}" hx-get="{escape(path)}" hx-target="#{CONTENT_TARGET}"'
        f' hx-swap="innerHTML" hx-push-url="true"{cls}>{escape(label)}</a>'
    )


def markdown_to_html(body: str) -> str:
    return markdown.markdown(body, extensions=["fenced_code", "tables"])


def _tag_links(tags: list[str]) -> str:
    if not tags:
        return ""
    links = "".join(nav_link(tag_path(t), t, "tag") for t in tags)
    return f'<div class="tags">{links}</div>'


def post_list(posts: list[ContentRecord], active_tag: str | None = None) -> str:
    heading = f"Posts tagged {escape(active_tag)}" if active_tag else "Posts"
    parts = [f"<h1>{heading}</h1>"]
    if not posts:
        parts.append("<p>No posts found.</p>")
        return "<section>" + "".join(parts) + "</section>"

    parts.append('<ul class="post-list">')
    for post in posts:
        parts.append(
            "<li><article>"
            f"<h2>{nav_link(post.path, post.title)}</h2>"
            f'<time datetime="{post.date.isoformat()}">{post.date.strftime("%B %d, %Y")}</time>'
        )
        if post.excerpt:
            parts.append(f"<p>{escape(post.excerpt)}</p>")
        parts.append(_tag_links(post.tags))
        parts.append("</article></li>")
    parts.append("</ul>")
    if active_tag:
        parts.append(f"<nav>{nav_link('/', 'All posts')}</nav>")
    return "<section>" + "".join(parts) + "</section>"


def post_view(post: ContentRecord) -> str:
    modified = ""
    if post.modified:
        modified = (
            f' <span class="modified">updated '
            f'<time datetime="{post.modified.isoformat()}">{post.modified.isoformat()}</time></span>'
        )
    return (
        "<article>"
        f"<header><h1>{escape(post.title)}</h1>"
        f'<time datetime="{post.date.isoformat()}">{post.date.strftime("%B %d, %Y")}</time>'
        f"{modified}{_tag_links(post.tags)}</header>"
        f'<div class="content">{markdown_to_html(post.body)}</div>'
        "</article>"
        f"<nav>{nav_link('/', 'Back to home')}</nav>"
    )


def tag_index(tags: list[TagSummary]) -> str:
    items = "".join(
        f"<li>{nav_link(tag_path(t.name), t.name)} ({t.count})</li>" for t in tags
    )
    return f'<aside class="tag-index"><h2>Tags</h2><ul>{items}</ul></aside>'


def not_found(path: str) -> str:
    return (
        "<section><h1>Not found</h1>"
        f"<p>Nothing lives at <code>{escape(path)}</code>.</p>"
        f"<p>{nav_link('/', 'Return home')}</p></section>"
    )


def document(
    *,
    site_title: str,
    title: str,
    description: str,
    canonical_url: str,
    inner: str,
    language: str = "en",
    extra_head: str = "",
) -> str:
    """Wrap *inner* in the full document shell."""
    lang = escape(language.split("-")[0])
    return (
        "<!DOCTYPE html>\n"
        f'<html lang="{lang}">\n<head>\n'
        '<meta charset="utf-8">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"<title>{escape(title)}</title>\n"
        f'<meta name="description" content="{escape(description)}">\n'
        f'<link rel="canonical" href="{escape(canonical_url)}">\n'
        f'<link rel="alternate" type="application/rss+xml" title="{escape(site_title)}"'
        ' href="/feed.xml">\n'
        f"{extra_head}"
        '<link rel="stylesheet" href="/css/style.css">\n'
        '<script src="/js/htmx.min.js" defer></script>\n'
        "</head>\n<body>\n"
        f'<header id="site-header"><nav>{nav_link("/", site_title, "site-title")}</nav></header>\n'
        f'<main id="content-main"><div id="{CONTENT_TARGET}">{inner}</div></main>\n'
        '<footer><p><a href="/feed.xml">RSS</a></p></footer>\n'
        "</body>\n</html>\n"
    )
