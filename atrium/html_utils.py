"""HTML utility functions for Atrium.

String-level post-processing applied to rendered markup.

Functions:
    join_root_url: Join a base URL with a path.
    apply_embed_mode: Point the base tag at the site domain and open the
        document to cross-origin scripting from a parent frame.
    minify_html: Deterministic whitespace and comment removal.
"""

from __future__ import annotations

import json
import re

from markupsafe import escape

# Literal tag emitted by page templates; embedding mode rewrites it.
BASE_TAG = '<base href="/">'

# Blocks whose bodies are whitespace-sensitive and copied verbatim.
_PRESERVE_RE = re.compile(
    r"<(pre|textarea|script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL
)
# Conditional comments are kept; they carry markup for legacy browsers.
_COMMENT_RE = re.compile(r"<!--(?!\[if).*?-->", re.DOTALL)
_WHITESPACE_RE = re.compile(r"\s+")
# A single space between two tags; group 2 and 3 are the adjacent tag names.
_TAG_GAP_RE = re.compile(r"(</?([!\w-]+)[^>]*>) (?=</?([!\w-]+))")
# Space next to these tags is not rendered, so it can be dropped. Space
# between inline tags such as `<em>` or `<a>` is visible text and stays.
BLOCK_TAGS = frozenset(
    """
    !doctype html head body title meta link base script style noscript
    address article aside blockquote dd details dialog div dl dt fieldset
    figcaption figure footer form h1 h2 h3 h4 h5 h6 header hgroup hr li main
    nav ol p pre section summary table tbody td tfoot th thead tr ul
    """.split()
)


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Examples:
        >>> join_root_url('http://example.com/', '/')
        'http://example.com/'
    """
    if not root_url:
        return path
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def iframe_gate_script(domain: str) -> str:
    """Return the script that sets ``document.domain`` to the site domain.

    Examples:
        >>> iframe_gate_script('example.com')
        '<script>document.domain = "example.com";</script>'
    """
    literal = json.dumps(domain).replace("</", "<\\/")
    return f"<script>document.domain = {literal};</script>"


def apply_embed_mode(html: str, domain: str) -> str:
    """Rewrite the base tag for cross-origin iframe embedding.

    The first literal ``<base href="/">`` becomes an absolute base URL on the
    configured domain, immediately followed by the document.domain script.
    Markup without the literal tag is returned unchanged.

    Args:
        html: Rendered markup.
        domain: Configured site domain, e.g. ``example.com``.

    Returns:
        Markup with the base tag rewritten.

    Examples:
        >>> apply_embed_mode('<head><base href="/"></head>', 'example.com')
        '<head><base href="http://example.com/"><script>document.domain = "example.com";</script></head>'
    """
    base_url = join_root_url(f"http://{escape(domain)}", "/")
    replacement = f'<base href="{base_url}">{iframe_gate_script(domain)}'
    return html.replace(BASE_TAG, replacement, 1)


def minify_html(html: str) -> str:
    """Collapse whitespace and drop comments from markup.

    ``pre``, ``textarea``, ``script`` and ``style`` blocks are copied verbatim.
    The transform is a pure function of its input, so identical markup
    always minifies to identical bytes.

    Examples:
        >>> minify_html('<div>\\n  <p>Hi   there</p>\\n</div>')
        '<div><p>Hi there</p></div>'
    """
    parts: list[str] = []
    pos = 0
    for match in _PRESERVE_RE.finditer(html):
        parts.append(_collapse(html[pos : match.start()], after_block=pos > 0))
        # Whitespace between a tag and a preserved block is inter-tag space.
        if parts[-1].endswith("> "):
            parts[-1] = parts[-1][:-1]
        parts.append(match.group(0))
        pos = match.end()
    parts.append(_collapse(html[pos:], after_block=pos > 0))
    return "".join(parts).strip()


def _collapse(fragment: str, after_block: bool = False) -> str:
    fragment = _COMMENT_RE.sub("", fragment)
    fragment = _WHITESPACE_RE.sub(" ", fragment)
    fragment = _TAG_GAP_RE.sub(_close_tag_gap, fragment)
    if after_block and fragment == " ":
        return ""
    if after_block and fragment.startswith(" <"):
        fragment = fragment[1:]
    return fragment


def _close_tag_gap(match: re.Match[str]) -> str:
    names = {match.group(2).lower(), match.group(3).lower()}
    if names & BLOCK_TAGS:
        return match.group(1)
    return match.group(1) + " "
