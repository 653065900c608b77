"""Parser for KDL, the node-tree language niri's config is written in.

A document is a list of nodes::

    name arg "arg" key=value { child; child }

Two incompatible revisions of the language exist in the wild. ``parse``
tries the current one (KDL v2) and falls back to the legacy one (KDL v1).
When both fail, the KDL v2 error is reported.
"""

import logging
import math
import re
import string
from dataclasses import dataclass, field
from typing import Optional, Union

from .errors import ParseError

logger = logging.getLogger(__name__)

Value = Union[str, int, float, bool, None]

WHITESPACE = frozenset(
    "\t \u00a0\u1680\u202f\u205f\u3000\ufeff" + "".join(map(chr, range(0x2000, 0x200B)))
)
NEWLINES = frozenset("\r\n\u0085\u000b\u000c\u2028\u2029")
_NEWLINE_RE = re.compile("\r\n|[\r\n\u0085\u000b\u000c\u2028\u2029]")

# terminates a number or keyword
_VALUE_END = WHITESPACE | NEWLINES | frozenset(";{})/\\")

_NUMBER = re.compile(
    r"""[+-]?(?:
        0x[0-9a-fA-F][0-9a-fA-F_]*
      | 0o[0-7][0-7_]*
      | 0b[01][01_]*
      | [0-9][0-9_]*(?:\.[0-9][0-9_]*)?(?:[eE][+-]?[0-9][0-9_]*)?
    )""",
    re.VERBOSE,
)
_RADIX = {"0x": 16, "0o": 8, "0b": 2}

# children blocks nested deeper than this are rejected
MAX_DEPTH = 100


@dataclass
class Node:
    """A generic config node, before any meaning is given to it."""
    name: str
    arguments: list = field(default_factory=list)
    properties: dict = field(default_factory=dict)
    children: list["Node"] = field(default_factory=list)
    line: int = field(default=0, compare=False)
    column: int = field(default=0, compare=False)


def _to_number(token: str) -> Union[int, float]:
    sign = -1 if token.startswith("-") else 1
    body = token.lstrip("+-").replace("_", "")
    radix = _RADIX.get(body[:2])
    if radix:
        return sign * int(body[2:], radix)
    if any(c in body for c in ".eE"):
        return sign * float(body)
    return sign * int(body)


class _Parser:
    """Recursive-descent machinery both dialects share.

    Subclasses decide what strings, bare identifiers and keywords look like.
    """

    dialect = ""
    identifier_excluded = frozenset()
    escapes: dict = {}
    strings_span_lines = False
    whitespace_escape = False

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.depth = 0
        # last resolved location, so scanning for line breaks stays incremental
        self._loc = (0, 1, 0)

    # -- cursor helpers

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self, offset: int = 0) -> str:
        i = self.pos + offset
        return self.text[i] if i < len(self.text) else ""

    def startswith(self, prefix: str) -> bool:
        return self.text.startswith(prefix, self.pos)

    def location(self, pos: int) -> tuple[int, int]:
        scanned, line, line_start = self._loc
        if pos < scanned:
            scanned, line, line_start = 0, 1, 0
        elif scanned and self.text[scanned - 1:scanned + 1] == "\r\n":
            # the "\r" was already counted
            scanned += 1
        for match in _NEWLINE_RE.finditer(self.text, scanned, max(pos, scanned)):
            line += 1
            line_start = match.end()
        self._loc = (max(pos, scanned), line, line_start)
        return line, pos - line_start + 1

    def error(self, reason: str, pos: Optional[int] = None) -> ParseError:
        line, column = self.location(self.pos if pos is None else pos)
        return ParseError(reason, line, column, self.dialect)

    # -- whitespace and comments

    def consume_newline(self) -> bool:
        if self.startswith("\r\n"):
            self.pos += 2
            return True
        if self.peek() in NEWLINES:
            self.pos += 1
            return True
        return False

    def skip_line_comment(self) -> None:
        while not self.at_end() and self.peek() not in NEWLINES:
            self.pos += 1

    def skip_block_comment(self) -> None:
        start = self.pos
        depth = 0
        while not self.at_end():
            if self.startswith("/*"):
                depth += 1
                self.pos += 2
            elif self.startswith("*/"):
                depth -= 1
                self.pos += 2
                if depth == 0:
                    return
            else:
                self.pos += 1
        raise self.error("unterminated block comment", start)

    def skip_continuation(self) -> None:
        start = self.pos
        self.pos += 1
        while self.peek() in WHITESPACE:
            self.pos += 1
        if self.startswith("//"):
            self.skip_line_comment()
        if not self.at_end() and not self.consume_newline():
            raise self.error("expected a newline after line continuation", start)

    def skip_node_space(self) -> bool:
        """Skip space that may appear inside a node. Return True if any was skipped."""
        start = self.pos
        while not self.at_end():
            if self.peek() in WHITESPACE:
                self.pos += 1
            elif self.startswith("/*"):
                self.skip_block_comment()
            elif self.peek() == "\\":
                self.skip_continuation()
            else:
                break
        return self.pos > start

    def skip_line_space(self) -> None:
        while not self.at_end():
            c = self.peek()
            if c in WHITESPACE or c in NEWLINES or c == ";":
                self.pos += 1
            elif self.startswith("//"):
                self.skip_line_comment()
            elif self.startswith("/*"):
                self.skip_block_comment()
            else:
                return

    # -- document structure

    def parse_document(self) -> list[Node]:
        nodes = self.parse_nodes()
        if not self.at_end():
            raise self.error("unexpected '}'")
        return nodes

    def parse_nodes(self) -> list[Node]:
        nodes = []
        while True:
            self.skip_line_space()
            if self.at_end() or self.peek() == "}":
                return nodes
            if self.startswith("/-"):
                self.pos += 2
                self.skip_line_space()
                self.parse_node()
                continue
            nodes.append(self.parse_node())

    def parse_node(self) -> Node:
        start = self.pos
        line, column = self.location(start)
        self.skip_type_annotation()
        name = self.parse_name()
        if name is None:
            raise self.error(f"expected a node name, found {self.peek()!r}")
        node = Node(name, line=line, column=column)
        has_children = False

        while True:
            spaced = self.skip_node_space()
            if self.at_end() or self.peek() == "}":
                return node
            if self.peek() == ";":
                self.pos += 1
                return node
            if self.consume_newline():
                return node
            if self.startswith("//"):
                self.skip_line_comment()
                return node
            if self.startswith("/-"):
                self.pos += 2
                self.skip_node_space()
                if self.peek() == "{":
                    self.parse_children(start, name)
                else:
                    self.parse_entry(Node(name))
                continue
            if self.peek() == "{":
                node.children.extend(self.parse_children(start, name))
                has_children = True
                continue
            if has_children:
                raise self.error(f"node {name!r} has entries after its children block")
            if not spaced:
                raise self.error("expected whitespace before an argument or property")
            self.parse_entry(node)

    def parse_children(self, node_start: int, name: str) -> list[Node]:
        if self.depth >= MAX_DEPTH:
            raise self.error(f"children blocks nested more than {MAX_DEPTH} deep")
        self.depth += 1
        self.pos += 1
        children = self.parse_nodes()
        self.depth -= 1
        if self.at_end():
            raise self.error(f"unterminated children block of node {name!r}", node_start)
        self.pos += 1
        return children

    def parse_entry(self, node: Node) -> None:
        start = self.pos
        key = self.parse_name()
        if key is not None and self.consume_equals():
            node.properties[key] = self.parse_value()
            return
        self.pos = start
        node.arguments.append(self.parse_value())

    def skip_type_annotation(self) -> None:
        if self.peek() != "(":
            return
        start = self.pos
        self.pos += 1
        self.skip_node_space()
        if self.parse_name() is None:
            raise self.error("expected a type name", start)
        self.skip_node_space()
        if self.peek() != ")":
            raise self.error("unterminated type annotation", start)
        self.pos += 1

    def parse_name(self) -> Optional[str]:
        value = self.parse_string()
        if value is None:
            value = self.parse_identifier()
        return value

    # -- values

    def parse_value(self) -> Value:
        self.skip_type_annotation()
        if self.at_end():
            raise self.error("expected a value")
        value = self.parse_string()
        if value is not None:
            return value
        c = self.peek()
        if c.isdigit() or (c in "+-" and self.peek(1).isdigit()):
            return self.parse_number()
        return self.parse_bare_value()

    def parse_number(self) -> Union[int, float]:
        start = self.pos
        match = _NUMBER.match(self.text, self.pos)
        if match is None:
            raise self.error("invalid number")
        self.pos = match.end()
        if not self.at_end() and self.peek() not in _VALUE_END:
            raise self.error("invalid number", start)
        return _to_number(match.group())

    def read_identifier(self) -> Optional[str]:
        start = self.pos
        while not self.at_end():
            c = self.peek()
            if c in WHITESPACE or c in NEWLINES or c in self.identifier_excluded:
                break
            self.pos += 1
        token = self.text[start:self.pos]
        if not token or token[0].isdigit() or (
            token[0] in "+-." and len(token) > 1 and token[1].isdigit()
        ):
            self.pos = start
            return None
        return token

    def parse_quoted(self) -> str:
        start = self.pos
        self.pos += 1
        out = []
        while True:
            if self.at_end():
                raise self.error("unterminated string", start)
            c = self.peek()
            if c == '"':
                self.pos += 1
                return "".join(out)
            if c == "\\":
                text, self.pos = self.decode_escape(self.text, self.pos, self.pos)
                out.append(text)
                continue
            if c in NEWLINES and not self.strings_span_lines:
                raise self.error("newline in a single-line string", start)
            out.append(c)
            self.pos += 1

    def parse_raw(self, start: int, hashes: int, multiline_ok: bool) -> str:
        self.pos += 1
        closing = '"' + "#" * hashes
        end = self.text.find(closing, self.pos)
        if end < 0:
            raise self.error("unterminated raw string", start)
        value = self.text[self.pos:end]
        if not multiline_ok and any(c in NEWLINES for c in value):
            raise self.error("newline in a single-line string", start)
        self.pos = end + len(closing)
        return value

    def decode_escape(self, text: str, i: int, error_pos: int) -> tuple[str, int]:
        c = text[i + 1] if i + 1 < len(text) else ""
        if c in self.escapes:
            return self.escapes[c], i + 2
        if c == "u" and text.startswith("{", i + 2):
            end = text.find("}", i + 3)
            digits = text[i + 3:end] if end >= 0 else ""
            if not 1 <= len(digits) <= 6 or not all(d in string.hexdigits for d in digits):
                raise self.error("invalid unicode escape", error_pos)
            code = int(digits, 16)
            if code > 0x10FFFF or 0xD800 <= code <= 0xDFFF:
                raise self.error("invalid unicode scalar in escape", error_pos)
            return chr(code), end + 1
        if self.whitespace_escape and c and (c in WHITESPACE or c in NEWLINES):
            j = i + 1
            while j < len(text) and (text[j] in WHITESPACE or text[j] in NEWLINES):
                j += 1
            return "", j
        raise self.error(f"invalid escape sequence '\\{c}'", error_pos)

    # -- dialect hooks

    def parse_string(self) -> Optional[str]:
        raise NotImplementedError

    def parse_identifier(self) -> Optional[str]:
        raise NotImplementedError

    def parse_bare_value(self) -> Value:
        raise NotImplementedError

    def consume_equals(self) -> bool:
        raise NotImplementedError


class _CanonicalParser(_Parser):
    """KDL v2."""

    dialect = "kdl-v2"
    identifier_excluded = frozenset('\\/(){};[]="#')
    escapes = {
        "n": "\n", "r": "\r", "t": "\t", "\\": "\\", '"': '"',
        "b": "\b", "f": "\f", "s": " ",
    }
    whitespace_escape = True

    keywords = {
        "#true": True,
        "#false": False,
        "#null": None,
        "#inf": math.inf,
        "#-inf": -math.inf,
        "#nan": math.nan,
    }
    reserved = frozenset(("true", "false", "null", "inf", "-inf", "nan"))

    def parse_string(self) -> Optional[str]:
        start = self.pos
        if self.peek() == '"':
            if self.startswith('"""'):
                return self.parse_multiline(start, raw=False, hashes=0)
            return self.parse_quoted()
        if self.peek() == "#":
            hashes = 0
            while self.peek(hashes) == "#":
                hashes += 1
            if self.peek(hashes) == '"':
                self.pos += hashes
                if self.startswith('"""'):
                    return self.parse_multiline(start, raw=True, hashes=hashes)
                return self.parse_raw(start, hashes, multiline_ok=False)
        return None

    def parse_multiline(self, start: int, raw: bool, hashes: int) -> str:
        self.pos += 3
        if not self.consume_newline():
            raise self.error('expected a newline after opening """', start)
        body_start = self.pos
        closing = '"""' + "#" * hashes
        if raw:
            end = self.text.find(closing, self.pos)
        else:
            end = self.pos
            while end < len(self.text) and not self.text.startswith(closing, end):
                end += 2 if self.text[end] == "\\" else 1
            if end >= len(self.text):
                end = -1
        if end < 0:
            raise self.error("unterminated multi-line string", start)
        self.pos = end + len(closing)
        value = self.dedent(self.text[body_start:end], start)
        if raw:
            return value
        out = []
        i = 0
        while i < len(value):
            if value[i] == "\\":
                text, i = self.decode_escape(value, i, start)
                out.append(text)
            else:
                out.append(value[i])
                i += 1
        return "".join(out)

    def dedent(self, body: str, start: int) -> str:
        lines = _NEWLINE_RE.split(body)
        prefix = lines[-1]
        if any(c not in WHITESPACE for c in prefix):
            raise self.error('closing """ must be on its own line', start)
        out = []
        for line in lines[:-1]:
            if all(c in WHITESPACE for c in line):
                out.append("")
            elif line.startswith(prefix):
                out.append(line[len(prefix):])
            else:
                raise self.error("multi-line string line is less indented than its closing", start)
        return "\n".join(out)

    def parse_identifier(self) -> Optional[str]:
        start = self.pos
        token = self.read_identifier()
        if token in self.reserved:
            raise self.error(f"bare {token!r} is not allowed, write '#{token}'", start)
        return token

    def parse_bare_value(self) -> Value:
        start = self.pos
        if self.peek() == "#":
            for keyword, value in self.keywords.items():
                end = start + len(keyword)
                if self.startswith(keyword) and (
                    end >= len(self.text) or self.text[end] in _VALUE_END
                ):
                    self.pos = end
                    return value
            raise self.error("unknown keyword", start)
        token = self.parse_identifier()
        if token is None:
            raise self.error(f"expected a value, found {self.peek()!r}")
        return token

    def consume_equals(self) -> bool:
        save = self.pos
        self.skip_node_space()
        if self.peek() == "=":
            self.pos += 1
            self.skip_node_space()
            return True
        self.pos = save
        return False


class _LegacyParser(_Parser):
    """KDL v1."""

    dialect = "kdl-v1"
    identifier_excluded = frozenset('\\/(){}<>;[]=,"')
    escapes = {
        "n": "\n", "r": "\r", "t": "\t", "\\": "\\", "/": "/", '"': '"',
        "b": "\b", "f": "\f",
    }
    strings_span_lines = True

    keywords = {"true": True, "false": False, "null": None}

    def parse_string(self) -> Optional[str]:
        start = self.pos
        if self.peek() == '"':
            return self.parse_quoted()
        if self.peek() == "r":
            hashes = 0
            while self.peek(1 + hashes) == "#":
                hashes += 1
            if self.peek(1 + hashes) == '"':
                self.pos += 1 + hashes
                return self.parse_raw(start, hashes, multiline_ok=True)
        return None

    def parse_identifier(self) -> Optional[str]:
        return self.read_identifier()

    def parse_bare_value(self) -> Value:
        start = self.pos
        token = self.read_identifier()
        if token is None:
            raise self.error(f"expected a value, found {self.peek()!r}")
        if token not in self.keywords:
            raise self.error(f"bare identifier {token!r} is not a value, quote it", start)
        return self.keywords[token]

    def consume_equals(self) -> bool:
        if self.peek() == "=":
            self.pos += 1
            return True
        return False


def parse_canonical(text: str) -> list[Node]:
    """Parse ``text`` as a KDL v2 document."""
    return _CanonicalParser(text).parse_document()


def parse_legacy(text: str) -> list[Node]:
    """Parse ``text`` as a KDL v1 document."""
    return _LegacyParser(text).parse_document()


def parse(text: str) -> list[Node]:
    """Parse KDL text written in either revision of the language.

    Raises the KDL v2 ParseError if neither revision accepts the text.
    """
    try:
        return parse_canonical(text)
    except ParseError as err:
        canonical_error = err
    try:
        nodes = parse_legacy(text)
    except ParseError as legacy_error:
        logger.debug("KDL v1 parse failed too: %s", legacy_error)
        raise canonical_error from None
    logger.debug("parsed as KDL v1 after KDL v2 failed: %s", canonical_error)
    return nodes


_IDENTIFIER_UNSAFE = WHITESPACE | NEWLINES | frozenset('\\/(){}<>;[]=,"#')


def _format_identifier(name: str) -> str:
    if (
        not name
        or name[0].isdigit()
        or name in _CanonicalParser.reserved
        or any(c in _IDENTIFIER_UNSAFE for c in name)
    ):
        return format_value(name)
    return name


def format_value(value: Value) -> str:
    """Render a value the way it would be written in a config."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        escaped = (
            value.replace("\\", "\\\\")
            .replace('"', '\\"')
            .replace("\n", "\\n")
            .replace("\r", "\\r")
            .replace("\t", "\\t")
        )
        return f'"{escaped}"'
    if isinstance(value, float):
        if math.isnan(value):
            return "nan"
        if math.isinf(value):
            return "inf" if value > 0 else "-inf"
    return repr(value)


def format_node(node: Node) -> str:
    """Render a node and its children back into compact one-line text."""
    parts = [_format_identifier(node.name)]
    parts.extend(format_value(arg) for arg in node.arguments)
    parts.extend(
        f"{_format_identifier(key)}={format_value(value)}"
        for key, value in node.properties.items()
    )
    text = " ".join(parts)
    if node.children:
        body = " ".join(format_node(child) for child in node.children)
        return f"{text} {{ {body} }}"
    return text + ";"
