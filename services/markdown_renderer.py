# services/markdown_renderer.py
"""
Line-at-a-time renderer for the small Markdown subset the itinerary prompt asks for.

Each line is classified on its own, top to bottom:
  '### x'          -> heading
  '**a** b'        -> emphasis lead (needs at least two '**')
  '- x'            -> list item
  blank            -> spacer
  anything else    -> paragraph
No nesting, no paragraph merging, no inline emphasis past the leading bold.
"""
from __future__ import annotations

import html
from typing import List, Sequence

from models import (
    Block,
    EmphasisLeadBlock,
    HeadingBlock,
    ListItemBlock,
    ParagraphBlock,
    SpacerBlock,
)


def classify_line(line: str) -> Block:
    if line.startswith("### "):
        return HeadingBlock(text=line[4:])
    if line.startswith("**"):
        parts = line.split("**", 2)
        if len(parts) > 2:
            return EmphasisLeadBlock(bold=parts[1], rest=parts[2])
    if line.startswith("- "):
        return ListItemBlock(text=line[2:])
    if line.strip() == "":
        return SpacerBlock()
    return ParagraphBlock(text=line)


def render(text: str) -> List[Block]:
    return [classify_line(line) for line in (text or "").split("\n")]


def to_html(blocks: Sequence[Block]) -> str:
    out: List[str] = []
    for b in blocks:
        if isinstance(b, HeadingBlock):
            out.append(f"<h3>{html.escape(b.text)}</h3>")
        elif isinstance(b, EmphasisLeadBlock):
            out.append(f"<p><strong>{html.escape(b.bold)}</strong>{html.escape(b.rest)}</p>")
        elif isinstance(b, ListItemBlock):
            out.append(f'<li class="item">{html.escape(b.text)}</li>')
        elif isinstance(b, SpacerBlock):
            out.append("<br>")
        else:
            out.append(f"<p>{html.escape(b.text)}</p>")
    return "\n".join(out)
