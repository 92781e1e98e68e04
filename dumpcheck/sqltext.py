"""Quote- and comment-aware helpers for reading SQL dump text."""
import re
from typing import Iterator, List, Optional, Tuple

QUOTES = "'\"`"

_VERSION_COMMENT = re.compile(r"/\*!\d{0,6}")
_BARE_IDENTIFIER = re.compile(r"[\w$]+")
_ESCAPES = {"0": "\x00", "n": "\n", "r": "\r", "t": "\t", "b": "\b", "Z": "\x1a"}


def skip_quoted(text: str, start: int) -> int:
    """Return the index just past the quoted literal opening at ``start``."""
    quote = text[start]
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\" and quote != "`":
            i += 2
            continue
        if ch == quote:
            if i + 1 < n and text[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return n


def comment_end(text: str, start: int) -> Optional[int]:
    """If a comment opens at ``start`` return the index past it, else None."""
    ch = text[start]
    if ch == "#" or (text.startswith("--", start)
                     and (start + 2 == len(text) or text[start + 2] in " \t\r\n")):
        end = text.find("\n", start)
        return len(text) if end < 0 else end
    if text.startswith("/*", start):
        end = text.find("*/", start + 2)
        return len(text) if end < 0 else end + 2
    return None


def iter_statements(text: str) -> Iterator[Tuple[str, int]]:
    """Yield (statement_text, line_number) pairs.

    Honours quotes, comments and ``DELIMITER`` switches. Plain comments in
    front of a statement are dropped; version comments (``/*!40101 ...*/``)
    are kept so callers can unwrap them.
    """
    delimiter = ";"
    n = len(text)
    i = start = 0
    leading = True
    line = 1
    counted = 0
    while i < n:
        ch = text[i]
        if leading:
            if ch.isspace():
                i += 1
                continue
            if ch in "Dd" and (i == 0 or text[i - 1] == "\n"):
                m = re.match(r"DELIMITER[ \t]+(\S+)[^\n]*", text[i:i + 200],
                             re.IGNORECASE)
                if m:
                    delimiter = m.group(1)
                    i += m.end()
                    continue
            end = comment_end(text, i)
            if end is not None and not text.startswith("/*!", i):
                i = end
                continue
            start = i
            leading = False
        if ch in QUOTES:
            i = skip_quoted(text, i)
            continue
        end = comment_end(text, i)
        if end is not None:
            i = end
            continue
        if text.startswith(delimiter, i):
            statement = text[start:i].strip()
            if statement:
                line += text.count("\n", counted, start)
                counted = start
                yield statement, line
            i += len(delimiter)
            leading = True
            continue
        i += 1
    if not leading:
        statement = text[start:].strip()
        if statement:
            line += text.count("\n", counted, start)
            yield statement, line


def strip_comments(text: str) -> str:
    """Drop comments, keeping the body of version comments like ``/*!50100 ...*/``."""
    out = []
    i = last = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in QUOTES:
            i = skip_quoted(text, i)
            continue
        if text.startswith("/*!", i):
            m = _VERSION_COMMENT.match(text, i)
            out.append(text[last:i])
            out.append(" ")
            i = last = m.end()
            continue
        if text.startswith("*/", i):
            # closing half of a version comment
            out.append(text[last:i])
            out.append(" ")
            i = last = i + 2
            continue
        end = comment_end(text, i)
        if end is not None:
            out.append(text[last:i])
            out.append(" ")
            i = last = end
            continue
        i += 1
    out.append(text[last:])
    return "".join(out)


def leading_words(statement: str, count: int = 3) -> List[str]:
    """First few upper-cased words of a statement, comments removed."""
    head = strip_comments(statement[:512])
    return [w.upper() for w in head.split()[:count]]


def mask_literals(text: str, fill: str = "_") -> str:
    """Blank out the inside of '...' and "..." literals, keeping offsets."""
    out = []
    i = last = 0
    n = len(text)
    while i < n:
        if text[i] in "'\"":
            end = skip_quoted(text, i)
            inner = max(0, end - i - 2)
            out.append(text[last:i + 1])
            out.append(fill * inner)
            last = i + 1 + inner
            i = end
            continue
        if text[i] == "`":
            i = skip_quoted(text, i)
            continue
        i += 1
    out.append(text[last:])
    return "".join(out)


def find_closing_paren(text: str, open_pos: int) -> int:
    """Index of the ``)`` matching the ``(`` at ``open_pos``, or -1."""
    depth = 0
    i = open_pos
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in QUOTES:
            i = skip_quoted(text, i)
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def split_top_level(text: str, sep: str = ",") -> List[str]:
    """Split on ``sep`` outside quotes and parentheses; pieces are stripped."""
    parts = []
    depth = 0
    i = last = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in QUOTES:
            i = skip_quoted(text, i)
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == sep and depth == 0:
            parts.append(text[last:i].strip())
            last = i + 1
        i += 1
    parts.append(text[last:].strip())
    return [p for p in parts if p]


def unquote_identifier(name: str) -> str:
    name = name.strip()
    if len(name) >= 2 and name[0] == name[-1] and name[0] in "`\"":
        q = name[0]
        return name[1:-1].replace(q + q, q)
    return name


def unquote_string(literal: str) -> str:
    """Decode a quoted SQL string literal; anything else is returned as-is."""
    literal = literal.strip()
    if len(literal) < 2 or literal[0] not in "'\"" or literal[-1] != literal[0]:
        return literal
    quote = literal[0]
    body = literal[1:-1]
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append(_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        if ch == quote and i + 1 < len(body) and body[i + 1] == quote:
            out.append(quote)
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def read_identifier(text: str, pos: int) -> Tuple[Optional[str], int]:
    """Read one (possibly quoted) identifier at ``pos``; returns (name, end)."""
    while pos < len(text) and text[pos].isspace():
        pos += 1
    if pos >= len(text):
        return None, pos
    if text[pos] in "`\"":
        end = skip_quoted(text, pos)
        return unquote_identifier(text[pos:end]), end
    m = _BARE_IDENTIFIER.match(text, pos)
    if not m:
        return None, pos
    return m.group(0), m.end()


def read_qualified_name(text: str, pos: int) -> Tuple[Optional[str], Optional[str], int]:
    """Read ``[schema.]name`` at ``pos``; returns (schema, name, end)."""
    first, end = read_identifier(text, pos)
    if first is None:
        return None, None, pos
    rest = end
    while rest < len(text) and text[rest].isspace():
        rest += 1
    if rest < len(text) and text[rest] == ".":
        second, end2 = read_identifier(text, rest + 1)
        if second is not None:
            return first, second, end2
    return None, first, end
