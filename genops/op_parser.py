"""
Operation markup parsing for genops.

The parser converts raw generator output into a ParsedBatch. Five tag
kinds are recognised:

    <op-write path="REL_PATH" description="TEXT"> FILE CONTENT </op-write>
    <op-rename from="REL_PATH" to="REL_PATH"></op-rename>
    <op-delete path="REL_PATH" />            (or the paired form)
    <op-add-dependency packages="pkg1 pkg2" />
    <op-summary> TEXT </op-summary>

Write content is arbitrary source code and may itself contain angle
brackets, so no regular expression is ever run across the document.
Instead each opener is located with a substring search, its attributes
are read up to the first unquoted ">", and the literal close tag is
searched for from there. Tags of one kind never nest, so the first close
tag wins and the whole scan stays linear.

Write bodies are parsed first; openers of the other kinds that fall
inside a write body are file content, not operations, and are ignored.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .domain import DeleteOp, ParsedBatch, RenameOp, WriteOp
from .errors import UnclosedWriteError

WRITE_TAG = "op-write"
RENAME_TAG = "op-rename"
DELETE_TAG = "op-delete"
DEPENDENCY_TAG = "op-add-dependency"
SUMMARY_TAG = "op-summary"

_WRITE_OPEN_RE = re.compile(r"<op-write(?=[\s/>])")
_WRITE_CLOSE = "</op-write>"
_ATTR_RE = re.compile(r'([A-Za-z_][\w-]*)\s*=\s*"([^"]*)"')
_FENCE_OPEN_RE = re.compile(r"^```[A-Za-z0-9_+.-]*[ \t]*\n?")

Span = Tuple[int, int]


@dataclass
class _TagBlock:
    attrs: Dict[str, str]
    content: Optional[str]
    start: int
    end: int


class _Spans:
    """
    Sorted, non-overlapping regions of the text that other tag kinds
    must not be read from.
    """

    def __init__(self, spans: Sequence[Span] = ()) -> None:
        self._starts = [s for s, _ in spans]
        self._ends = [e for _, e in spans]

    def end_of_span_containing(self, idx: int) -> Optional[int]:
        i = bisect.bisect_right(self._starts, idx) - 1
        if i >= 0 and idx < self._ends[i]:
            return self._ends[i]
        return None


def count_write_tags(text: str) -> Tuple[int, int]:
    opens = len(_WRITE_OPEN_RE.findall(text))
    closes = text.count(_WRITE_CLOSE)
    return opens, closes


def has_unclosed_write(text: str) -> bool:
    """
    Return True when <op-write openers and </op-write> closers differ.
    """

    opens, closes = count_write_tags(text)
    return opens != closes


def check_unclosed_writes(text: str) -> None:
    """
    Fail fast on truncated write blocks.

    A write whose tail was cut off would otherwise be skipped silently,
    leaving a half-generated project with no signal, so the whole
    submission is rejected before any structural parsing.
    """

    opens, closes = count_write_tags(text)
    if opens != closes:
        raise UnclosedWriteError(opens=opens, closes=closes)


def parse_batch(text: str) -> ParsedBatch:
    """
    Pre-check and parse raw markup; the entry point used by the engine.
    """

    check_unclosed_writes(text)
    return parse_op_tags(text)


def parse_op_tags(text: str) -> ParsedBatch:
    """
    Parse operation markup into a ParsedBatch.

    This function is pure and never raises on malformed input: tags
    missing required attributes, or openers without a close tag, are
    skipped individually. Use parse_batch to also enforce the
    unclosed-write check.
    """

    writes: List[WriteOp] = []
    write_spans: List[Span] = []
    for block in _iter_paired(text, WRITE_TAG, _Spans()):
        write_spans.append((block.start, block.end))
        path = block.attrs.get("path")
        if not path:
            continue
        writes.append(
            WriteOp(
                path=path,
                content=_clean_write_content(block.content or ""),
                description=block.attrs.get("description") or None,
            )
        )

    masked = _Spans(write_spans)

    renames: List[RenameOp] = []
    for block in _iter_void(text, RENAME_TAG, masked, require_close=True):
        from_path = block.attrs.get("from")
        to_path = block.attrs.get("to")
        if from_path and to_path:
            renames.append(RenameOp(from_path=from_path, to_path=to_path))

    deletes: List[DeleteOp] = []
    for block in _iter_void(text, DELETE_TAG, masked, require_close=False):
        path = block.attrs.get("path")
        if path:
            deletes.append(DeleteOp(path=path))

    dependencies: List[str] = []
    for block in _iter_void(text, DEPENDENCY_TAG, masked, require_close=False):
        for pkg in (block.attrs.get("packages") or "").split():
            if pkg not in dependencies:
                dependencies.append(pkg)

    summary: Optional[str] = None
    for block in _iter_paired(text, SUMMARY_TAG, masked):
        summary = (block.content or "").strip() or None
        break

    return ParsedBatch(
        writes=tuple(writes),
        renames=tuple(renames),
        deletes=tuple(deletes),
        dependencies=tuple(dependencies),
        summary=summary,
        raw=text,
    )


def render_batch(batch: ParsedBatch) -> str:
    """
    Render a batch back into operation markup.

    Parsing the output yields a batch equal to the input as long as
    attribute values contain no double quotes and write contents do not
    start or end with whitespace or contain a close tag.
    """

    out: List[str] = []

    for write in batch.writes:
        attrs = f'path="{write.path}"'
        if write.description:
            attrs += f' description="{write.description}"'
        out.append(f"<{WRITE_TAG} {attrs}>\n{write.content}\n</{WRITE_TAG}>")

    for rename in batch.renames:
        out.append(
            f'<{RENAME_TAG} from="{rename.from_path}" to="{rename.to_path}"></{RENAME_TAG}>'
        )

    for delete in batch.deletes:
        out.append(f'<{DELETE_TAG} path="{delete.path}" />')

    if batch.dependencies:
        out.append(f'<{DEPENDENCY_TAG} packages="{" ".join(batch.dependencies)}" />')

    if batch.summary:
        out.append(f"<{SUMMARY_TAG}>{batch.summary}</{SUMMARY_TAG}>")

    if not out:
        return ""
    return "\n".join(out) + "\n"


def _clean_write_content(content: str) -> str:
    """
    Trim the tag framing and strip one outer code fence if present.
    """

    content = content.strip()
    if not content.startswith("```"):
        return content

    content = _FENCE_OPEN_RE.sub("", content, count=1)
    if content.endswith("```"):
        content = content[: -len("```")]
    return content.strip()


def _iter_paired(text: str, tag: str, masked: _Spans) -> Iterator[_TagBlock]:
    """
    Yield tags that wrap content, e.g. <op-write ...>...</op-write>.

    An opener without a matching close tag is skipped and scanning
    resumes right after it.
    """

    close = f"</{tag}>"
    pos = 0
    while True:
        opener = _find_opener(text, tag, pos, masked)
        if opener is None:
            return
        start, attrs, body_start, self_closing = opener
        if self_closing:
            pos = body_start
            continue

        close_idx = text.find(close, body_start)
        if close_idx == -1:
            pos = body_start
            continue

        end = close_idx + len(close)
        yield _TagBlock(attrs=attrs, content=text[body_start:close_idx], start=start, end=end)
        pos = end


def _iter_void(
    text: str,
    tag: str,
    masked: _Spans,
    require_close: bool,
) -> Iterator[_TagBlock]:
    """
    Yield attribute-only tags written either self-closing or paired.

    For the paired form the close tag must follow the opener with only
    whitespace in between. When require_close is set, a bare opener that
    is neither self-closing nor closed is skipped.
    """

    close = f"</{tag}>"
    pos = 0
    while True:
        opener = _find_opener(text, tag, pos, masked)
        if opener is None:
            return
        start, attrs, end, self_closing = opener

        if not self_closing:
            after = end
            while after < len(text) and text[after].isspace():
                after += 1
            if text.startswith(close, after):
                end = after + len(close)
            elif require_close:
                pos = end
                continue

        yield _TagBlock(attrs=attrs, content=None, start=start, end=end)
        pos = end


def _find_opener(
    text: str,
    tag: str,
    start: int,
    masked: _Spans,
) -> Optional[Tuple[int, Dict[str, str], int, bool]]:
    """
    Locate the next opener for tag at or after start.

    Returns (opener index, attributes, index just past the opener,
    self_closing) or None when no further complete opener exists.
    """

    needle = f"<{tag}"
    n = len(text)
    pos = start
    while True:
        idx = text.find(needle, pos)
        if idx == -1:
            return None

        span_end = masked.end_of_span_containing(idx)
        if span_end is not None:
            pos = span_end
            continue

        name_end = idx + len(needle)
        if name_end < n and not (text[name_end].isspace() or text[name_end] in "/>"):
            # A longer tag name sharing the prefix, e.g. <op-write-x>.
            pos = name_end
            continue

        j = name_end
        in_quote = False
        while j < n:
            ch = text[j]
            if ch == '"':
                in_quote = not in_quote
            elif ch == ">" and not in_quote:
                break
            j += 1
        else:
            return None

        raw_attrs = text[name_end:j].rstrip()
        self_closing = raw_attrs.endswith("/")
        if self_closing:
            raw_attrs = raw_attrs[:-1]

        attrs: Dict[str, str] = {}
        for name, value in _ATTR_RE.findall(raw_attrs):
            attrs.setdefault(name, value)
        return idx, attrs, j + 1, self_closing
