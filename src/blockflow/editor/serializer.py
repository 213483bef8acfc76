"""YAML text rendering and parsing of workflow configuration."""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional

import yaml
from pydantic import BaseModel

from .assembler import assemble
from .blocks import Block

EMPTY_CONFIG_COMMENT = "# No configuration defined."
EMPTY_WORKFLOW_COMMENT = "# No workflow configured."

_BOOL_TAG = "tag:yaml.org,2002:bool"
_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"
_VALUE_TAG = "tag:yaml.org,2002:value"
_YAML12_BOOL = re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$")


def _drop_implicit_resolvers(cls: type, *tags: str) -> None:
    cls.yaml_implicit_resolvers = {
        first: [(tag, regexp) for tag, regexp in resolvers if tag not in tags]
        for first, resolvers in cls.yaml_implicit_resolvers.items()
    }


class WorkflowDumper(yaml.SafeDumper):
    """Safe dumper with indented sequences and no anchors."""

    def increase_indent(self, flow: bool = False, indentless: bool = False):
        return super().increase_indent(flow, False)

    def ignore_aliases(self, data: Any) -> bool:
        return True


class WorkflowLoader(yaml.SafeLoader):
    """Safe loader that keeps ``on``/``yes``/dates as plain strings."""


# YAML 1.2 booleans: `on:` is a key, not True
for _cls in (WorkflowDumper, WorkflowLoader):
    _drop_implicit_resolvers(_cls, _BOOL_TAG)
    _cls.add_implicit_resolver(_BOOL_TAG, _YAML12_BOOL, list("tTfF"))
_drop_implicit_resolvers(WorkflowLoader, _TIMESTAMP_TAG, _VALUE_TAG)


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_str(data)


WorkflowDumper.add_representer(str, _represent_str)


class YamlParseResult(BaseModel):
    """Outcome of parsing inbound YAML text."""

    success: bool
    data: Optional[dict[Any, Any]] = None
    error: Optional[str] = None


def serialize(value: Any) -> str:
    """Render a config tree as YAML text with 2-space indentation.

    Never returns blank text: ``None`` or an empty mapping render as a
    single comment line.
    """
    if value is None or value == {}:
        return f"{EMPTY_CONFIG_COMMENT}\n"
    assert _is_tree(value), "config value contains a cyclic reference"

    text = yaml.dump(
        value,
        Dumper=WorkflowDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        indent=2,
        width=float("inf"),
    )
    # bare scalars get an explicit document end marker
    if text.endswith("\n...\n"):
        text = text[: -len("...\n")]
    return text


def block_yaml(block: Block) -> str:
    """Single-block view: the block's bare config."""
    return serialize(block.config)


def workflow_yaml(blocks: Iterable[Block], *, annotate: bool = False) -> str:
    """Full-document view of an ordered block list."""
    blocks = list(blocks)
    if not blocks:
        return f"{EMPTY_WORKFLOW_COMMENT}\n"
    return serialize(assemble(blocks, annotate=annotate))


def parse_yaml(text: Optional[str]) -> YamlParseResult:
    """Parse YAML text whose top level must be a mapping."""
    try:
        parsed = yaml.load(text or "", Loader=WorkflowLoader)
    except yaml.YAMLError as e:
        return YamlParseResult(success=False, error=f"Invalid YAML: {e}")

    if parsed is None:
        return YamlParseResult(success=True, data={})
    if not isinstance(parsed, dict):
        return YamlParseResult(success=False, error="YAML top level must be a mapping")
    return YamlParseResult(success=True, data=parsed)


def _is_tree(value: Any, ancestors: frozenset[int] = frozenset()) -> bool:
    if isinstance(value, dict):
        children: Iterable[Any] = value.values()
    elif isinstance(value, list):
        children = value
    else:
        return True

    if id(value) in ancestors:
        return False
    inner = ancestors | {id(value)}
    return all(_is_tree(child, inner) for child in children)
