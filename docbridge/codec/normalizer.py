"""
Loose-text normalizer

Rewrites permissive, shell-style document text (unquoted keys, single
quotes, constructor calls such as ObjectId("..") or ISODate(..), regex
literals) into strict JSON text in a single pass. Extended literals are
deferred as sentinel strings ("##ObjectId(..)", "##/pattern/flags") which
survive json.loads as ordinary strings and are resolved later by the
materializer.
"""

import json
import logging
from typing import Any, List, Optional, Tuple

from ..exceptions import TextSyntaxError
from .values import SENTINEL_MARKER

logger = logging.getLogger(__name__)

# Constructors whose argument is deferred verbatim as a sentinel
SENTINEL_CONSTRUCTORS = {
    "ISODate": "ISODate",
    "Date": "ISODate",
    "ObjectId": "ObjectId",
    "UUID": "UUID",
    "LUUID": "LUUID",
    "Timestamp": "Timestamp",
}

# Constructors unwrapped to their bare numeral
NUMERIC_CONSTRUCTORS = {"NumberInt", "NumberLong"}

STRUCTURAL = "{}[],:"
QUOTES = "\"'"
WORD_PUNCTUATION = "_$.+-"

# Raw line breaks and tabs typed inside strings
CONTROL_ESCAPES = str.maketrans({"\n": "\\n", "\r": "\\r", "\t": "\\t"})


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch in WORD_PUNCTUATION


def sentinel(name: str, argument: str) -> str:
    """Sentinel string for a constructor call, e.g. ##ObjectId(abc)"""
    return f"{SENTINEL_MARKER}{name}({argument})"


def _strip_quotes(argument: str) -> str:
    argument = argument.strip()
    if len(argument) >= 2 and argument[0] == argument[-1] and argument[0] in QUOTES:
        return argument[1:-1]
    return argument


class LooseTextNormalizer:
    """Single-pass lexer turning loose document text into strict JSON text"""

    def __init__(self, text: str):
        self.text = text
        self.length = len(text)
        self.out: List[str] = []
        self.stack: List[str] = []
        self.expect_key = False
        self.pending_comma = False

    def normalize(self) -> str:
        """Run the lexer over the whole input"""
        i = 0
        while i < self.length:
            ch = self.text[i]

            if ch.isspace():
                # layout noise outside of strings
                i += 1
            elif ch in "{[":
                self._emit(ch)
                self.stack.append(ch)
                self.expect_key = ch == "{"
                i += 1
            elif ch in "}]":
                # trailing commas before a closing bracket are dropped
                self.pending_comma = False
                self.out.append(ch)
                if self.stack:
                    self.stack.pop()
                self.expect_key = False
                i += 1
            elif ch == ",":
                self._flush_comma()
                self.pending_comma = True
                self.expect_key = self._in_object()
                i += 1
            elif ch == ":":
                self._emit(ch)
                self.expect_key = False
                i += 1
            elif ch in QUOTES:
                i = self._read_string(i)
            elif self._at_key():
                i = self._read_bare_key(i)
            elif ch == "/":
                i = self._read_regex(i)
            else:
                i = self._read_word(i)

        self._flush_comma()
        return "".join(self.out)

    def _in_object(self) -> bool:
        return bool(self.stack) and self.stack[-1] == "{"

    def _at_key(self) -> bool:
        return self.expect_key and self._in_object()

    def _flush_comma(self):
        if self.pending_comma:
            self.out.append(",")
            self.pending_comma = False

    def _emit(self, token: str):
        self._flush_comma()
        self.out.append(token)

    def _scan_quoted(self, start: int) -> Tuple[str, int]:
        """Raw content of a quoted string starting at start, and the end index"""
        quote = self.text[start]
        i = start + 1
        while i < self.length:
            ch = self.text[i]
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                return self.text[start + 1 : i], i + 1
            i += 1
        return self.text[start + 1 :], self.length

    def _read_string(self, start: int) -> int:
        quote = self.text[start]
        raw, end = self._scan_quoted(start)

        if quote == "'":
            raw = self._requote(raw)
        raw = raw.translate(CONTROL_ESCAPES)

        if self._at_key():
            trimmed = raw.strip()
            if trimmed == "_id" or trimmed.startswith("$"):
                raw = trimmed

        self._emit(f'"{raw}"')
        return end

    @staticmethod
    def _requote(raw: str) -> str:
        """Body of a single-quoted string rewritten for double quotes"""
        chars = []
        i = 0
        while i < len(raw):
            ch = raw[i]
            if ch == "\\" and i + 1 < len(raw):
                if raw[i + 1] == "'":
                    chars.append("'")
                else:
                    chars.append(raw[i : i + 2])
                i += 2
                continue
            chars.append('\\"' if ch == '"' else ch)
            i += 1
        return "".join(chars)

    def _read_bare_key(self, start: int) -> int:
        i = start
        while i < self.length and self.text[i] not in STRUCTURAL + QUOTES:
            i += 1
        self._emit(json.dumps(self.text[start:i].strip(), ensure_ascii=False))
        return i

    def _read_regex(self, start: int) -> int:
        i = start + 1
        in_class = False
        while i < self.length:
            ch = self.text[i]
            if ch == "\\":
                i += 2
                continue
            if ch == "[":
                in_class = True
            elif ch == "]":
                in_class = False
            elif ch == "/" and not in_class:
                break
            i += 1

        pattern = self.text[start + 1 : min(i, self.length)]
        i += 1
        flags_start = i
        while i < self.length and self.text[i].isalpha():
            i += 1
        flags = self.text[flags_start:i] if flags_start <= self.length else ""

        literal = f"{SENTINEL_MARKER}/{pattern}/{flags}"
        self._emit(json.dumps(literal, ensure_ascii=False))
        return i

    def _skip_space(self, i: int) -> int:
        while i < self.length and self.text[i].isspace():
            i += 1
        return i

    def _read_arguments(self, start: int) -> Tuple[str, int]:
        """Raw text between the parenthesis at start and its match"""
        depth = 0
        i = start
        while i < self.length:
            ch = self.text[i]
            if ch in QUOTES:
                _, i = self._scan_quoted(i)
                continue
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    return self.text[start + 1 : i], i + 1
            i += 1
        return self.text[start + 1 :], self.length

    def _read_word(self, start: int) -> int:
        i = start
        while i < self.length and _is_word_char(self.text[i]):
            i += 1

        if i == start:
            # stray character, left for the parser to reject
            self._emit(self.text[start])
            return start + 1

        word = self.text[start:i]
        after = self._skip_space(i)

        if word == "new" and after < self.length and _is_word_char(self.text[after]):
            return after

        if after < self.length and self.text[after] == "(":
            arguments, end = self._read_arguments(after)
            self._emit(self._constructor(word, arguments))
            return end

        self._emit(word)
        return i

    @staticmethod
    def _constructor(name: str, arguments: str) -> str:
        if name in SENTINEL_CONSTRUCTORS:
            target = SENTINEL_CONSTRUCTORS[name]
            if target == "Timestamp":
                argument = arguments.strip()
            else:
                argument = _strip_quotes(arguments)
            return json.dumps(sentinel(target, argument), ensure_ascii=False)

        if name in NUMERIC_CONSTRUCTORS:
            return _strip_quotes(arguments)

        logger.debug("Leaving unknown constructor %s(...) untouched", name)
        return f"{name}({arguments})"


def normalize(text: str) -> str:
    """Strict JSON text for loose document text"""
    return LooseTextNormalizer(text).normalize()


def parse_loose(text: str) -> Any:
    """Normalize loose text and parse it into a generic tree"""
    strict = normalize(text)
    try:
        return json.loads(strict)
    except json.JSONDecodeError as e:
        raise TextSyntaxError(
            f"Cannot parse document text: {e.msg} (position {e.pos})",
            text=text,
            position=e.pos,
        ) from e


def is_sentinel(value: Any, name: Optional[str] = None) -> bool:
    """True for sentinel strings, optionally of one constructor"""
    if not isinstance(value, str) or not value.startswith(SENTINEL_MARKER):
        return False
    if name is None:
        return True
    return value.startswith(f"{SENTINEL_MARKER}{name}(")
