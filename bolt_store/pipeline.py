# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""Aggregation pipeline stages and their execution.

A pipeline is an ordered list of stages applied to an in-memory working set.
Two stage kinds exist:

* ``match`` filters the working set with an equality query.
* ``group`` partitions the working set by one field and sums the declared
  accumulator fields per partition.

Raw stages are single-key dicts. Both ``match``/``group`` and the
``$match``/``$group`` spellings are accepted. A group body is either::

    {"groupKeyField": "age", "initial": {"total": 0}, "accumulate": ["age"]}

or the Mongo-like form, where every key besides ``_id`` and ``initial`` is an
accumulator field::

    {"_id": "age", "initial": {"total": 0}, "age": 1}
"""

import copy
import logging
from collections.abc import Hashable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from .query import filter_documents, is_number, validate_query
from .storage_engine import InvalidPipelineError

logger = logging.getLogger(__name__)

_GROUP_KEYS = {"groupKeyField", "initial", "accumulate"}


@dataclass(frozen=True)
class MatchStage:
    """Keep only the documents equal to ``query`` on every queried field."""

    query: dict[str, Any] = field(default_factory=dict)

    def apply(self, documents: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return filter_documents(documents, self.query)


@dataclass(frozen=True)
class GroupStage:
    """Partition by ``key_field`` and sum ``accumulate`` fields per partition.

    Each emitted document is ``{"_id": <key>, **initial}`` with every
    accumulator field holding its initial numeric value (0 if absent) plus
    the numeric values of that field across the partition. Missing and
    non-numeric values add nothing. Groups come out in first-seen key order.
    """

    key_field: str
    initial: dict[str, Any] = field(default_factory=dict)
    accumulate: tuple[str, ...] = ()

    def apply(self, documents: list[dict[str, Any]]) -> list[dict[str, Any]]:
        groups: dict[Hashable, dict[str, Any]] = {}
        for doc in documents:
            key = doc.get(self.key_field)
            token = _group_token(key)
            group = groups.get(token)
            if group is None:
                group = self._new_group(key)
                groups[token] = group

            for name in self.accumulate:
                value = doc.get(name)
                if is_number(value):
                    group[name] += value

        return list(groups.values())

    def _new_group(self, key: Any) -> dict[str, Any]:
        group: dict[str, Any] = {"_id": copy.deepcopy(key)}
        for name, value in self.initial.items():
            if name != "_id":
                group[name] = copy.deepcopy(value)
        for name in self.accumulate:
            if not is_number(group.get(name)):
                group[name] = 0
        return group


Stage = Union[MatchStage, GroupStage]


def _group_token(value: Any) -> Hashable:
    """Build a hashable grouping key that follows strict equality."""
    if value is None:
        return ("null",)
    if isinstance(value, bool):
        return ("bool", value)
    if is_number(value):
        return ("number", value)
    if isinstance(value, str):
        return ("string", value)
    if isinstance(value, Mapping):
        return ("object", tuple(sorted((str(k), _group_token(v)) for k, v in value.items())))
    if isinstance(value, (list, tuple)):
        return ("array", tuple(_group_token(v) for v in value))
    if isinstance(value, Hashable):
        return (type(value).__name__, value)
    return (type(value).__name__, repr(value))


def _stage_name(tag: Any) -> str:
    if not isinstance(tag, str):
        raise InvalidPipelineError(f"Stage tag must be a string, got {tag!r}")
    return tag[1:] if tag.startswith("$") else tag


def _parse_group(body: Any) -> GroupStage:
    if not isinstance(body, Mapping):
        raise InvalidPipelineError(f"Group stage body must be a mapping, got {type(body).__name__}")

    if "groupKeyField" in body:
        unknown = set(body) - _GROUP_KEYS
        if unknown:
            raise InvalidPipelineError(f"Unknown group stage options: {sorted(unknown)}")
        key_field = body["groupKeyField"]
        accumulate = body.get("accumulate", [])
        if isinstance(accumulate, str) or not isinstance(accumulate, Sequence):
            raise InvalidPipelineError("Group 'accumulate' must be a list of field names")
    elif "_id" in body:
        key_field = body["_id"]
        accumulate = [name for name in body if name not in ("_id", "initial")]
    else:
        raise InvalidPipelineError("Group stage requires 'groupKeyField' or '_id'")

    if not isinstance(key_field, str) or not key_field.lstrip("$"):
        raise InvalidPipelineError(f"Group key field must be a field name, got {key_field!r}")
    key_field = key_field[1:] if key_field.startswith("$") else key_field

    initial = body.get("initial") or {}
    if not isinstance(initial, Mapping) or not all(isinstance(k, str) for k in initial):
        raise InvalidPipelineError("Group 'initial' must be a mapping with string keys")

    seen: list[str] = []
    for name in accumulate:
        if not isinstance(name, str):
            raise InvalidPipelineError(f"Accumulator field names must be strings, got {name!r}")
        if name == "_id":
            raise InvalidPipelineError("'_id' holds the group key and cannot be accumulated")
        if name not in seen:
            seen.append(name)

    return GroupStage(key_field=key_field, initial=dict(initial), accumulate=tuple(seen))


def parse_stage(raw: Any) -> Stage:
    """Convert one raw stage into a MatchStage or GroupStage.

    Raises:
        InvalidPipelineError: If the stage tag is unknown or its body is malformed
        InvalidQueryError: If a match stage's query is not a flat equality query
    """
    if isinstance(raw, MatchStage):
        return MatchStage(query=validate_query(raw.query))
    if isinstance(raw, GroupStage):
        return raw
    if not isinstance(raw, Mapping) or len(raw) != 1:
        raise InvalidPipelineError(f"Each stage must be a mapping with exactly one tag, got {raw!r}")

    tag, body = next(iter(raw.items()))
    name = _stage_name(tag)
    if name == "match":
        return MatchStage(query=validate_query(body))
    if name == "group":
        return _parse_group(body)
    raise InvalidPipelineError(f"Unsupported aggregation stage '{tag}'. Supported stages: group, match")


def parse_pipeline(pipeline: Any) -> list[Stage]:
    """Validate a raw pipeline and return its stages in order."""
    if isinstance(pipeline, (str, bytes, Mapping)) or not isinstance(pipeline, Sequence):
        raise InvalidPipelineError("Pipeline must be a list of stages")
    return [parse_stage(raw) for raw in pipeline]


def run_pipeline(documents: list[dict[str, Any]], stages: list[Stage]) -> list[dict[str, Any]]:
    """Run the stages left to right over the working set."""
    working_set = documents
    for stage in stages:
        working_set = stage.apply(working_set)
        logger.debug("%s produced %d documents", type(stage).__name__, len(working_set))
    return working_set
