from __future__ import annotations

import re
import unicodedata

import bleach
import markdown

MD_EXTENSIONS = ["extra", "sane_lists", "smarty"]

ALLOWED_TAGS = sorted(
    set(bleach.sanitizer.ALLOWED_TAGS)
    | {
        "p", "br", "hr", "pre", "code", "img",
        "h1", "h2", "h3", "h4", "h5", "h6",
        "table", "thead", "tbody", "tr", "th", "td",
        "dl", "dt", "dd", "sup", "sub", "del",
    }
)
ALLOWED_ATTRIBUTES = {
    "a": ["href", "title", "rel"],
    "img": ["src", "alt", "title"],
    "th": ["align"],
    "td": ["align"],
    "code": ["class"],
}

_cleaner = bleach.Cleaner(
    tags=ALLOWED_TAGS,
    attributes=ALLOWED_ATTRIBUTES,
    protocols=["http", "https", "mailto"],
    strip=True,
    strip_comments=True,
)


def render_markdown(text: str | None) -> str:
    """
    Markdown -> sanitized HTML. Raw HTML in posts is stripped down to the allow-list.
    """
    html = markdown.Markdown(extensions=MD_EXTENSIONS).convert(text or "")
    return _cleaner.clean(html)


def slugify(value: str, max_length: int = 200) -> str:
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^\w\s-]", "", value.lower())
    value = re.sub(r"[-\s_]+", "-", value).strip("-")
    return value[:max_length].rstrip("-") or "post"


def make_excerpt(content: str, length: int = 200) -> str:
    plain = bleach.clean(render_markdown(content), tags=[], strip=True)
    plain = " ".join(plain.split())
    if len(plain) <= length:
        return plain
    return plain[:length].rsplit(" ", 1)[0] + "..."
