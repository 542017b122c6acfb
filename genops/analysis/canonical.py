"""
Source canonicalisation for the semantic diff refinement.

When two versions of a file hash differently, the diff engine asks
whether they still say the same thing once formatting is taken out of
the picture. Each dialect below parses the source tolerantly and
re-serialises it to a canonical string; two sources are formatting-only
variants when both canonicalise under the same dialect and the results
match.

Dialects, tried in order:
  - python: ``ast.parse`` then ``ast.unparse``;
  - ecmascript: a token-level reader for JS/TS/JSX that reads
    punctuators longest-first, keeps literals and comments whole,
    requires balanced brackets, and joins tokens with single spaces.

A token stream is coarser than a real syntax tree, so the ecmascript
dialect errs towards reporting a change: anything it cannot tell apart
safely makes the two sides differ rather than match. Comments are
tokens, so editing one is a change.

This only answers "same after canonicalisation or not"; it does not say
which nodes changed.
"""

from __future__ import annotations

import ast
import logging
import re
from typing import Callable, List, Optional, Sequence, Tuple

LOG = logging.getLogger(__name__)

FORMATTING_ONLY = "formatting-only"

LINE_BREAK = "\n"

_WORD_RE = re.compile(r"[\w$]+")
_CLOSERS = {"(": ")", "[": "]", "{": "}"}

# Longest first.
_PUNCTUATORS = (
    ">>>=", "...", "===", "!==", "**=", "<<=", ">>=", ">>>", "&&=", "||=", "??=",
    "=>", "==", "!=", "<=", ">=", "&&", "||", "??", "?.", "++", "--",
    "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "**", "<<", ">>",
)
_REGEX_KEYWORDS = frozenset(
    {"return", "typeof", "instanceof", "in", "of", "new", "delete", "void",
     "throw", "case", "do", "else", "yield", "await"}
)
_RESTRICTED_KEYWORDS = frozenset({"return", "throw", "break", "continue", "yield"})


def canonicalize(source: str) -> Optional[Tuple[str, str]]:
    """
    Return (dialect, canonical form) for the first dialect that parses.
    """

    for name, func in _DIALECTS:
        canonical = func(source)
        if canonical is not None:
            return name, canonical
    return None


def formatting_only(a: str, b: str, dialect: Optional[str] = None) -> Optional[bool]:
    """
    Compare two sources after canonicalisation.

    With a dialect name only that dialect is tried. Without one, every
    dialect that accepts both sides has a say and they must all agree:
    "a + ++b" reads the same as "a ++ +b" in Python but not in
    JavaScript, so that pair is reported as different.

    Returns True when the sources canonicalise identically, False when
    they parse but differ, and None when no dialect accepts both sides.
    """

    verdict: Optional[bool] = None
    for name, func in _DIALECTS:
        if dialect is not None and name != dialect:
            continue
        canonical_a = func(a)
        if canonical_a is None:
            continue
        canonical_b = func(b)
        if canonical_b is None:
            continue
        LOG.debug("Compared sources using %s canonical form", name)
        if canonical_a != canonical_b:
            return False
        verdict = True
    return verdict


def _canonical_python(source: str) -> Optional[str]:
    try:
        tree = ast.parse(source)
        return ast.unparse(tree)
    except (SyntaxError, ValueError, RecursionError):
        return None


def _canonical_ecmascript(source: str) -> Optional[str]:
    tokens = ecmascript_tokens(source)
    if tokens is None:
        return None
    return " ".join(tokens)


def ecmascript_tokens(source: str) -> Optional[List[str]]:
    """
    Split JS/TS/JSX source into tokens, or None if it does not scan.

    Punctuators are read longest-first, so "a + ++b" and "a ++ +b" give
    different streams. String, template and regular expression literals
    and comments are single tokens that keep their inner whitespace. A
    line break is kept as a LINE_BREAK token where automatic semicolon
    insertion makes it significant: after return, throw, break, continue
    and yield, and before a prefix ++ or --.

    Unterminated literals or comments and unbalanced brackets count as
    parse failures.
    """

    tokens: List[str] = []
    expected: List[str] = []
    prev: Optional[str] = None
    prev_kind: Optional[str] = None
    newline_before = False
    i = 0
    n = len(source)

    while i < n:
        ch = source[i]

        if ch.isspace():
            if ch == "\n":
                newline_before = True
            i += 1
            continue

        if source.startswith("//", i):
            end = source.find("\n", i)
            if end == -1:
                end = n
            tokens.append(source[i:end].rstrip())
            i = end
            continue

        if source.startswith("/*", i):
            end = source.find("*/", i + 2)
            if end == -1:
                return None
            comment = source[i : end + 2]
            if "\n" in comment:
                newline_before = True
            tokens.append(comment)
            i = end + 2
            continue

        if ch in "'\"`":
            end = _string_end(source, i)
            kind = "atom"
        elif ch == "/" and _regex_allowed(prev, prev_kind):
            end = _regex_end(source, i)
            kind = "atom"
        else:
            match = _WORD_RE.match(source, i)
            if match:
                end = match.end()
                kind = "word"
            else:
                end = i + len(_punctuator_at(source, i))
                kind = "punct"
        if end is None:
            return None
        token = source[i:end]

        if token in _CLOSERS:
            expected.append(_CLOSERS[token])
        elif token in (")", "]", "}"):
            if not expected or expected.pop() != token:
                return None

        if newline_before and prev is not None:
            if (prev_kind == "word" and prev in _RESTRICTED_KEYWORDS) or token in ("++", "--"):
                tokens.append(LINE_BREAK)
        newline_before = False

        tokens.append(token)
        prev, prev_kind = token, kind
        i = end

    if expected:
        return None
    return tokens


def _punctuator_at(source: str, start: int) -> str:
    for punct in _PUNCTUATORS:
        if source.startswith(punct, start):
            return punct
    return source[start]


def _regex_allowed(prev: Optional[str], prev_kind: Optional[str]) -> bool:
    """
    Whether a "/" at this point starts a regular expression literal.

    After an operand (identifier, literal, closing bracket) it is a
    division; "<" is excluded so JSX closing tags such as </div> scan
    as punctuation.
    """

    if prev is None:
        return True
    if prev_kind == "word":
        return prev in _REGEX_KEYWORDS
    if prev_kind == "atom":
        return False
    return prev not in (")", "]", "}", "<")


def _regex_end(source: str, start: int) -> Optional[int]:
    """
    Index just past the regular expression literal (and its flags)
    opening at start.
    """

    i = start + 1
    n = len(source)
    in_class = False
    while i < n:
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "\n":
            return None
        if in_class:
            if ch == "]":
                in_class = False
        elif ch == "[":
            in_class = True
        elif ch == "/":
            i += 1
            while i < n and (source[i].isalnum() or source[i] in "_$"):
                i += 1
            return i
        i += 1
    return None


def _string_end(source: str, start: int) -> Optional[int]:
    """
    Index just past the string literal opening at start.

    Single and double quoted strings may not span lines; template
    literals may.
    """

    quote = source[start]
    i = start + 1
    n = len(source)
    while i < n:
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n" and quote != "`":
            return None
        i += 1
    return None


_DIALECTS: Sequence[Tuple[str, Callable[[str], Optional[str]]]] = (
    ("python", _canonical_python),
    ("ecmascript", _canonical_ecmascript),
)
