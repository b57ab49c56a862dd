"""Provides utility functions for loading token streams and saving edits.

Token streams are JSON documents with the token list stored under a "tokens"
key. Every record is validated with pydantic before it becomes a frozen
:class:`~lineweave.types.Token`; unknown fields are ignored so annotators may
attach extra metadata without breaking the loader.
"""
from __future__ import annotations
import json
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .types import BracketKind, Edit, Token, TokenKind


class TokenRecord(BaseModel):
    """Schema of one serialised token."""

    model_config = ConfigDict(extra="ignore")

    text: str
    kind: TokenKind
    offset: int = Field(0, ge=0)
    whitespace_before: int = Field(0, ge=0)
    newlines_before: int = Field(0, ge=0)
    spaces_before: int = Field(1, ge=0)
    must_break_before: bool = False
    can_break_before: bool = True
    split_penalty: int = Field(0, ge=0)
    bracket: Optional[BracketKind] = None
    starts_name: bool = False

    def to_token(self) -> Token:
        return Token(**self.model_dump())


def load_tokens(path: str) -> List[Token]:
    """
    Loads a list of Token objects from a JSON file.

    Args:
        path: The path to the input JSON file.

    Returns:
        A list of `Token` dataclass instances in stream order.

    Raises:
        FileNotFoundError: If the file at the specified path does not exist.
        ValueError: If the file is not valid JSON.
        TypeError: If the JSON structure is incorrect ("tokens" missing or not
                   a list, or a record that does not match the token schema).
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Token file not found at: {path}")
    except json.JSONDecodeError as e:
        raise ValueError(f"Error decoding JSON from {path}: {e}")

    items = data.get("tokens") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise TypeError(f"Expected a 'tokens' key with a list of objects in {path}")

    out = []
    for i, t_dict in enumerate(items):
        if not isinstance(t_dict, dict):
            raise TypeError(f"Token item at index {i} in {path} is not a dictionary.")
        try:
            out.append(TokenRecord.model_validate(t_dict).to_token())
        except ValidationError as e:
            raise TypeError(f"Invalid token record at index {i} in {path}: {e}")

    return out


def save_tokens(path: str, tokens: Sequence[Token]) -> None:
    """Saves tokens using the same structure `load_tokens` reads."""
    data = {"tokens": [dict(t.__dict__) for t in tokens]}
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def save_edits(path: str, edits: Sequence[Edit]) -> None:
    """
    Saves placement edits to a JSON file under an "edits" key.

    Args:
        path: The destination path for the output JSON file.
        edits: The edits in the order they were emitted.
    """
    data = {"edits": [dict(e.__dict__) for e in edits]}
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
