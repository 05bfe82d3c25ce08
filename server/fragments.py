# server/fragments.py
"""
Pulls the trailing JSON side-data out of a model reply.

The persona prompt asks the model to end a reply with
    {"gift":{"item": "...", "details": {...}}}
and/or
    {"child":{"name": "..."}}
optionally wrapped in a ```json fence. Models do not always comply, so this is
best-effort: anything that fails to decode is left in the text and reported in
`issues`, never raised.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from server.errors import FragmentParseFailed

FENCE = "```"


@dataclass(frozen=True)
class GiftFragment:
    item: str
    details: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class NameFragment:
    name: str


@dataclass
class Extraction:
    cleaned_text: str
    gift: Optional[GiftFragment] = None
    name: Optional[NameFragment] = None
    issues: List[str] = field(default_factory=list)


def _brace_spans(text: str) -> Tuple[List[Tuple[int, int]], List[int]]:
    """
    Top-level balanced {...} spans, plus the positions of opening braces that
    never close. One pass with a stack, so an unclosed brace (say a ":-{" in
    the prose) does not hide the braces after it. Quotes only count once inside
    a brace.
    """
    stack: List[int] = []
    pairs: List[Tuple[int, int]] = []
    in_str = esc = False
    for j, ch in enumerate(text):
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = bool(stack)
        elif ch == "{":
            stack.append(j)
        elif ch == "}" and stack:
            pairs.append((stack.pop(), j + 1))
    spans: List[Tuple[int, int]] = []
    for start, end in sorted(pairs):
        if spans and start < spans[-1][1]:
            continue
        spans.append((start, end))
    return spans, stack


def _candidate(text: str, spans, unclosed, key: str) -> Optional[Tuple[int, int]]:
    """
    Last balanced span mentioning the key; failing that, the greedy span from
    the first unclosed brace before the key to the last '}' in the text.
    """
    needle = f'"{key}"'
    for start, end in reversed(spans):
        if needle in text[start:end]:
            return start, end
    last = text.rfind("}")
    for start in unclosed:
        if start < last and needle in text[start:last + 1]:
            return start, last + 1
    return None


def _decode(chunk: str, kind: str, issues: List[str]) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(chunk)
    except (ValueError, RecursionError) as e:
        issues.append(f"{FragmentParseFailed.__name__}: {kind}: {type(e).__name__}: {e}")
        return None
    if not isinstance(data, dict):
        issues.append(f"{FragmentParseFailed.__name__}: {kind}: not an object")
        return None
    return data


def _gift_from(data: Dict[str, Any]) -> Optional[GiftFragment]:
    g = data.get("gift")
    if not isinstance(g, dict):
        return None
    item = g.get("item")
    if not isinstance(item, str) or not item.strip():
        return None
    details = g.get("details")
    return GiftFragment(item=item.strip(), details=details if isinstance(details, dict) else None)


def _name_from(data: Dict[str, Any]) -> Optional[NameFragment]:
    c = data.get("child")
    if not isinstance(c, dict):
        return None
    name = c.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    return NameFragment(name=name.strip())


def _trailing_fence(raw: str) -> Optional[Tuple[int, int, str]]:
    """(start, end, body) of the last ``` block when it closes the reply."""
    stripped = raw.rstrip()
    if not stripped.endswith(FENCE):
        return None
    close = len(stripped) - len(FENCE)
    open_ = stripped.rfind(FENCE, 0, close)
    if open_ == -1:
        return None
    body = stripped[open_ + len(FENCE):close]
    if body[:4].lower() == "json":
        body = body[4:]
    return open_, close + len(FENCE), body


def _extract_fenced(raw: str, learn_names: bool) -> Optional[Extraction]:
    fence = _trailing_fence(raw)
    if fence is None:
        return None
    start, end, body = fence
    issues: List[str] = []
    gift = name = None
    spans, _ = _brace_spans(body)
    for s, e in spans:
        data = _decode(body[s:e], "fenced", issues)
        if data is None:
            continue
        gift = gift or _gift_from(data)
        if learn_names:
            name = name or _name_from(data)
    if gift is None and name is None:
        return None
    cleaned = (raw[:start] + raw[end:]).strip()
    return Extraction(cleaned_text=cleaned, gift=gift, name=name, issues=issues)


def extract(raw_reply: str, learn_names: bool = True) -> Extraction:
    """
    Returns the reply with any recognised fragment removed, plus the fragments.
    A reply with no recognised fragment comes back unchanged.
    """
    raw = raw_reply or ""
    fenced = _extract_fenced(raw, learn_names)
    if fenced is not None:
        return fenced

    issues: List[str] = []
    spans, unclosed = _brace_spans(raw)
    remove: List[Tuple[int, int]] = []
    gift = name = None

    failed_span = None
    gift_span = _candidate(raw, spans, unclosed, "gift")
    if gift_span:
        data = _decode(raw[gift_span[0]:gift_span[1]], "gift", issues)
        if data is None:
            failed_span = gift_span
        else:
            gift = _gift_from(data)
            if gift:
                remove.append(gift_span)
                # one object carrying both keys counts for both
                if learn_names:
                    name = _name_from(data)

    if learn_names and name is None:
        child_span = _candidate(raw, spans, unclosed, "child")
        if child_span and child_span not in remove and child_span != failed_span:
            data = _decode(raw[child_span[0]:child_span[1]], "child", issues)
            if data is not None:
                name = _name_from(data)
                if name:
                    remove.append(child_span)

    if not remove:
        return Extraction(cleaned_text=raw, issues=issues)

    cleaned = raw
    for start, end in sorted(remove, reverse=True):
        cleaned = cleaned[:start] + cleaned[end:]
    return Extraction(cleaned_text=cleaned.strip(), gift=gift, name=name, issues=issues)
