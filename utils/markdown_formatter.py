"""Markdown email bodies and markup stripping for user-supplied text."""
import html
import re

import bleach
from markdown_it import MarkdownIt


# HTML input disabled; bleach still filters the rendered output
_md = MarkdownIt("commonmark", {"linkify": True, "typographer": True, "html": False}).enable(["linkify", "strikethrough"])

EMAIL_ALLOWED_TAGS = ["p", "ul", "ol", "li", "strong", "em", "h2", "h3", "hr", "a", "br"]

ALLOWED_ATTRIBUTES = {"a": ["href", "title", "rel", "target"]}

EMAIL_WRAPPER = (
    "<div style=\"font-family: 'Segoe UI', Arial, sans-serif; font-size: 14px; line-height: 1.6; color: #0f172a;\">"
    "{body}"
    "</div>"
)

PASSWORD_RESET_TEMPLATE = """## Reset your password

Hello {name}, we received a request to reset the password for your Youth Opportunities Portal account.

[Choose a new password]({link})

- The link expires in {minutes} minutes and can be used once.
- If the button does not work, paste this address into your browser: {link}

---

If you did not ask for a reset you can ignore this email; your password stays the same.
"""


def _normalize_whitespace(text: str) -> str:
    cleaned = re.sub(r"[\r\t]+", " ", text or "")
    cleaned = re.sub(r" +", " ", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def markdown_to_email_html(md_text: str) -> str:
    rendered = _md.render(_normalize_whitespace(md_text))
    safe_html = bleach.clean(rendered, tags=EMAIL_ALLOWED_TAGS, attributes=ALLOWED_ATTRIBUTES, strip=True)
    return EMAIL_WRAPPER.format(body=safe_html)


def markdown_to_plaintext(md_text: str) -> str:
    """Readable text part: markdown links become ``label (url)`` and markers are dropped."""
    text = re.sub(r"\[([^\]]+)\]\(([^)]+)\)", r"\1 (\2)", md_text or "")
    text = re.sub(r"^#{1,6}\s*", "", text, flags=re.MULTILINE)
    text = re.sub(r"^-{3,}\s*$", "", text, flags=re.MULTILINE)
    return _normalize_whitespace(text)


def clean_user_text(text):
    """Drop any markup from user-supplied text, keeping line breaks."""
    if text is None:
        return None
    stripped = bleach.clean(str(text), tags=[], attributes={}, strip=True)
    return _normalize_whitespace(html.unescape(stripped)) or None


def password_reset_markdown(user_name: str, reset_link: str, expires_minutes: int) -> str:
    name = clean_user_text(user_name) or "there"
    return PASSWORD_RESET_TEMPLATE.format(name=name, link=reset_link, minutes=expires_minutes)
