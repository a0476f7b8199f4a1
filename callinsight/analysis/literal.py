"""
Tokenizer and JSON renderer for the provider's loosely typed object literals.

The analysis value arrives either as JSON or as a Python-style literal
(single quoted strings, ``True``/``None``, sometimes unquoted keys). Rather
than rewriting quotes with regular expressions, the text is split into typed
tokens first and each string literal is decoded on its own, so a literal of
one quote style may freely contain the other quote character.
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from callinsight.errors import AnalysisParseError

PUNCTUATION = "{}[]:,"
QUOTES = "\"'"

LITERAL_WORDS = {
    "True": "true",
    "true": "true",
    "False": "false",
    "false": "false",
    "None": "null",
    "null": "null",
    "nil": "null",
}

JSON_NUMBER = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")

SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "0": "\0",
    "/": "/",
    "\\": "\\",
    "'": "'",
    '"': '"',
}


class TokenKind(str, Enum):
    PUNCT = "punct"
    STRING = "string"
    BAREWORD = "bareword"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    quote: Optional[str] = None


def _read_string(text: str, start: int):
    """Decode the quoted literal opening at ``start``; return (value, next index)"""
    quote = text[start]
    chars = []
    i = start + 1
    n = len(text)

    while i < n:
        ch = text[i]
        if ch == quote:
            return "".join(chars), i + 1
        if ch != "\\":
            chars.append(ch)
            i += 1
            continue

        if i + 1 >= n:
            break
        esc = text[i + 1]
        if esc in SIMPLE_ESCAPES:
            chars.append(SIMPLE_ESCAPES[esc])
            i += 2
        elif esc == "u" and re.fullmatch(r"[0-9a-fA-F]{4}", text[i + 2:i + 6]):
            chars.append(chr(int(text[i + 2:i + 6], 16)))
            i += 6
        elif esc == "x" and re.fullmatch(r"[0-9a-fA-F]{2}", text[i + 2:i + 4]):
            chars.append(chr(int(text[i + 2:i + 4], 16)))
            i += 4
        else:
            # Unknown escape, keep both characters
            chars.append("\\" + esc)
            i += 2

    raise AnalysisParseError(f"Unterminated string literal at offset {start}", normalized=text)


def tokenize(text: str) -> List[Token]:
    """Split an object literal into punctuation, string and bare word tokens"""
    tokens = []
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
        elif ch in PUNCTUATION:
            tokens.append(Token(TokenKind.PUNCT, ch))
            i += 1
        elif ch in QUOTES:
            value, i = _read_string(text, i)
            tokens.append(Token(TokenKind.STRING, value, quote=ch))
        else:
            start = i
            while i < n and text[i] not in PUNCTUATION:
                i += 1
            tokens.append(Token(TokenKind.BAREWORD, text[start:i].strip()))

    return tokens


def _render_bareword(word: str) -> str:
    if word in LITERAL_WORDS:
        return LITERAL_WORDS[word]
    if JSON_NUMBER.fullmatch(word):
        return word
    # Unquoted keys and free text
    return json.dumps(word)


def to_json(tokens: List[Token]) -> str:
    """Render tokens as canonical JSON text"""
    parts = []
    for index, token in enumerate(tokens):
        if token.kind == TokenKind.PUNCT:
            following = tokens[index + 1] if index + 1 < len(tokens) else None
            if (
                token.value == ","
                and following is not None
                and following.kind == TokenKind.PUNCT
                and following.value in "}]"
            ):
                # Trailing comma
                continue
            parts.append(token.value)
        elif token.kind == TokenKind.STRING:
            parts.append(json.dumps(token.value, ensure_ascii=False))
        else:
            parts.append(_render_bareword(token.value))
    return "".join(parts)


def normalize_literal(text: str) -> str:
    """Return JSON text for ``text``; input that already is JSON comes back unchanged"""
    try:
        json.loads(text)
        return text
    except ValueError:
        return to_json(tokenize(text))
