"""
Variable Resolver - ${name} substitution against the variable store.

Grammar: literal text interspersed with ${identifier} tokens, where the
identifier is non-empty and contains no "}". A "${" with no closing brace,
or with an empty name, is literal text.

Two modes:
- a string that is exactly one reference resolves to the raw bound value
  (lists and dicts survive intact); when unbound the string is returned
  unchanged
- any other string is interpolated: each reference becomes the string form
  of its value, or "" when unbound
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from .variables import VariableStore


class TokenKind(Enum):
    LITERAL = "literal"
    REFERENCE = "reference"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str   # literal text, or the bare variable name for references


def tokenize(text: str) -> list[Token]:
    """Split text into literal and reference tokens."""
    tokens: list[Token] = []
    literal: list[str] = []
    pos = 0
    length = len(text)

    while pos < length:
        start = text.find("${", pos)
        if start == -1:
            literal.append(text[pos:])
            break

        end = text.find("}", start + 2)
        if end == -1:
            # Unterminated reference: rest of the string is literal
            literal.append(text[pos:])
            break

        name = text[start + 2:end]
        if not name:
            literal.append(text[pos:end + 1])
            pos = end + 1
            continue

        literal.append(text[pos:start])
        if any(literal):
            tokens.append(Token(TokenKind.LITERAL, "".join(literal)))
        literal = []
        tokens.append(Token(TokenKind.REFERENCE, name))
        pos = end + 1

    if any(literal):
        tokens.append(Token(TokenKind.LITERAL, "".join(literal)))
    return tokens


def to_text(value: Any) -> str:
    """String form used when a value is interpolated into text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(to_text(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return str(value)


class VariableResolver:
    """Resolves ${name} references in arbitrary payloads."""

    def __init__(self, store: VariableStore):
        self.store = store

    def resolve(self, value: Any) -> Any:
        """
        Resolve references in value.

        Strings are resolved per the module rules; mappings and lists are
        recursed element-wise; everything else is returned unchanged.
        """
        if isinstance(value, str):
            return self._resolve_string(value)
        if isinstance(value, Mapping):
            return {k: self.resolve(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.resolve(v) for v in value]
        return value

    def _resolve_string(self, text: str) -> Any:
        tokens = tokenize(text)

        if len(tokens) == 1 and tokens[0].kind is TokenKind.REFERENCE:
            name = tokens[0].text
            if self.store.has(name):
                return self.store.get_variable(name)
            return text

        parts = []
        for token in tokens:
            if token.kind is TokenKind.LITERAL:
                parts.append(token.text)
            elif self.store.has(token.text):
                parts.append(to_text(self.store.get_variable(token.text)))
        return "".join(parts)


def resolve_variables(value: Any, store: VariableStore) -> Any:
    """Convenience wrapper around VariableResolver.resolve()."""
    return VariableResolver(store).resolve(value)
