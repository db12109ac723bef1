"""
Structured content nodes for bot messages.

Generators build a list of nodes; render_html turns them into markup in one place and
render_text gives the plain-text twin stored in history. Markup nodes carry model
output verbatim and are only safe after the sanitizer runs on the rendered result.
"""

from dataclasses import dataclass, field
from html import escape

from research_assistant.schemas.papers import Paper


@dataclass
class Heading:
    text: str
    level: int = 3


@dataclass
class Paragraph:
    text: str
    css_class: str | None = None


@dataclass
class Link:
    text: str
    href: str


@dataclass
class BulletList:
    items: list["Paragraph | Link | str"] = field(default_factory=list)
    ordered: bool = False


@dataclass
class PaperCard:
    paper: Paper
    body: str | None = None
    authors: list[str] = field(default_factory=list)
    published: str | None = None
    link_text: str = "Open PDF"
    note: str | None = None


@dataclass
class Markup:
    """Generated HTML, kept as-is until sanitization."""

    html: str
    text: str = ""


Node = Heading | Paragraph | Link | BulletList | PaperCard | Markup


def _render_inline(item: "Paragraph | Link | str") -> str:
    if isinstance(item, Link):
        return _render_link(item)
    if isinstance(item, Paragraph):
        return escape(item.text)
    return escape(item)


def _render_link(link: Link) -> str:
    return f'<a href="{escape(link.href, quote=True)}" target="_blank" rel="noopener">{escape(link.text)}</a>'


def _render_card(card: PaperCard) -> str:
    p = card.paper
    parts = [f'<div class="paper-info" data-paper-id="{escape(p.id, quote=True)}">', f"<h3>{escape(p.title)}</h3>"]
    meta = []
    if card.authors:
        meta.append(", ".join(card.authors))
    if card.published:
        meta.append(card.published)
    if meta:
        parts.append(f'<p class="paper-meta">{escape(" · ".join(meta))}</p>')
    body = card.body if card.body is not None else (p.abstract or "No abstract available.")
    parts.append(f"<p>{escape(body)}</p>")
    if card.note:
        parts.append(f'<p class="note"><em>{escape(card.note)}</em></p>')
    if p.download_url:
        parts.append(f"<p>{_render_link(Link(card.link_text, p.download_url))}</p>")
    parts.append("</div>")
    return "".join(parts)


def render_node(node: Node) -> str:
    if isinstance(node, Heading):
        level = min(max(node.level, 2), 4)
        return f"<h{level}>{escape(node.text)}</h{level}>"
    if isinstance(node, Paragraph):
        cls = f' class="{escape(node.css_class, quote=True)}"' if node.css_class else ""
        return f"<p{cls}>{escape(node.text)}</p>"
    if isinstance(node, Link):
        return f"<p>{_render_link(node)}</p>"
    if isinstance(node, BulletList):
        tag = "ol" if node.ordered else "ul"
        items = "".join(f"<li>{_render_inline(i)}</li>" for i in node.items)
        return f"<{tag}>{items}</{tag}>"
    if isinstance(node, PaperCard):
        return _render_card(node)
    if isinstance(node, Markup):
        return node.html
    raise TypeError(f"Unknown content node: {type(node).__name__}")


def render_html(nodes: list[Node]) -> str:
    return "".join(render_node(n) for n in nodes)


def _node_text(node: Node) -> str:
    if isinstance(node, (Heading, Paragraph)):
        return node.text
    if isinstance(node, Link):
        return f"{node.text}: {node.href}"
    if isinstance(node, BulletList):
        lines = []
        for n, item in enumerate(node.items, 1):
            label = f"{n}." if node.ordered else "-"
            lines.append(f"{label} {_node_text(item) if not isinstance(item, str) else item}")
        return "\n".join(lines)
    if isinstance(node, PaperCard):
        body = node.body if node.body is not None else (node.paper.abstract or "No abstract available")
        text = f'"{node.paper.title}"\n\n{body}'
        if node.note:
            text += f"\n\n{node.note}"
        return text
    if isinstance(node, Markup):
        return node.text or node.html
    return ""


def render_text(nodes: list[Node]) -> str:
    return "\n\n".join(t for t in (_node_text(n) for n in nodes) if t)
