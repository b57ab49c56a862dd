"""Manages the loading and validation of the layout style.

This module defines the `Config` dataclass, a typed container for every knob
the line builder and the layout search read: the column limit, indentation
widths, bin-packing and brace policies, and the penalty weights that make up
the "ugliness" score. `load_config` reads a YAML style file, starting from a
named preset (`based_on_style`) and overriding it with explicit keys.
"""
from __future__ import annotations
from dataclasses import dataclass, fields, replace
import logging
from typing import Any, Dict, Literal

import yaml

logger = logging.getLogger(__name__)

BraceWrapping = Literal["attach", "linux", "allman"]

BRACE_WRAPPING_VALUES = ("attach", "linux", "allman")


@dataclass
class Config:
    """
    A typed style object holding every layout setting.

    Attributes:
        column_limit: Hard width limit the search tries to respect.
        indent_width: Columns per nesting level of logical lines.
        continuation_indent_width: Extra columns for wrapped continuation lines.
        access_modifier_offset: Indent adjustment for `public:`-style lines.
        max_empty_lines_to_keep: Blank lines preserved between logical lines.
        bin_pack_arguments: Allow several call arguments per line once wrapped.
        bin_pack_parameters: Allow several declaration parameters per line.
        break_before_binary_operators: Wrap before (rather than after) binary
            operators.
        break_before_braces: Where the line builder puts block-opening braces.
        break_string_literals: Allow splitting protruding string literals.
        penalty_excess_character: Penalty per character beyond the limit.
        penalty_break_before_first_call_parameter: Penalty for breaking right
            after an opening parenthesis.
        penalty_break_first_less_less: Penalty for breaking before the first
            `<<` of a stream chain.
        penalty_return_type_on_its_own_line: Penalty for breaking between a
            return type and the declared name.
        penalty_break_assignment: Penalty for breaking after an assignment.
        penalty_break_string: Penalty per split of a string literal.
        penalty_first_break_at_level: Extra penalty for the first break inside
            a bracket level, favouring breaks in levels that already wrapped.
        complexity_token_limit: Lines longer than this are searched with the
            too-complex comparison relaxation.
        complexity_depth_limit: Lines nesting deeper than this are searched
            with the too-complex comparison relaxation.
    """
    column_limit: int = 80
    indent_width: int = 2
    continuation_indent_width: int = 4
    access_modifier_offset: int = -2
    max_empty_lines_to_keep: int = 1
    bin_pack_arguments: bool = True
    bin_pack_parameters: bool = True
    break_before_binary_operators: bool = False
    break_before_braces: BraceWrapping = "attach"
    break_string_literals: bool = True
    penalty_excess_character: int = 1000000
    penalty_break_before_first_call_parameter: int = 19
    penalty_break_first_less_less: int = 120
    penalty_return_type_on_its_own_line: int = 60
    penalty_break_assignment: int = 40
    penalty_break_string: int = 1000
    penalty_first_break_at_level: int = 15
    complexity_token_limit: int = 200
    complexity_depth_limit: int = 10

    @classmethod
    def get_field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}


PRESETS: Dict[str, Config] = {
    "llvm": Config(),
    "google": Config(
        access_modifier_offset=-1,
        penalty_return_type_on_its_own_line=200,
    ),
    "chromium": Config(
        access_modifier_offset=-1,
        bin_pack_parameters=False,
        penalty_return_type_on_its_own_line=200,
    ),
}


def config_from_mapping(data: Dict[str, Any]) -> Config:
    """
    Builds a `Config` from a plain mapping such as a parsed YAML document.

    The optional `based_on_style` key selects the preset the remaining keys
    override. Unknown keys are ignored with a warning.

    Raises:
        ValueError: If the preset or the brace policy is unknown.
    """
    preset_name = str(data.get("based_on_style", "llvm")).lower()
    if preset_name not in PRESETS:
        raise ValueError(f"Unknown base style '{preset_name}'. Expected one of: {', '.join(PRESETS)}")

    known = Config.get_field_names()
    overrides: Dict[str, Any] = {}
    for key, value in data.items():
        if key == "based_on_style":
            continue
        if key not in known:
            logger.warning("Ignoring unknown style option '%s'", key)
            continue
        overrides[key] = value

    cfg = replace(PRESETS[preset_name], **overrides)
    if cfg.break_before_braces not in BRACE_WRAPPING_VALUES:
        raise ValueError(
            f"Invalid break_before_braces '{cfg.break_before_braces}'. "
            f"Expected one of: {', '.join(BRACE_WRAPPING_VALUES)}"
        )
    if cfg.column_limit <= 0:
        raise ValueError("column_limit must be positive")
    return cfg


def load_config(path: str = "style.yaml") -> Config:
    """
    Loads a YAML style file into a `Config` object.

    Args:
        path: The path to the style YAML file.

    Returns:
        A fully populated `Config` object.

    Raises:
        FileNotFoundError: If the style file cannot be found.
        ValueError: If the YAML cannot be parsed or holds invalid values.
        TypeError: If the root of the YAML document is not a dictionary.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            y = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Style file not found at: {path}")
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML file at {path}: {e}")

    if y is None:
        y = {}
    if not isinstance(y, dict):
        raise TypeError(f"Style file {path} must be a dictionary.")

    return config_from_mapping(y)
