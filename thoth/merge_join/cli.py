# thoth-merge-join
# Copyright(C) 2022 Red Hat, Inc.
#
# This program is free software: you can redistribute it and / or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program. If not, see <http://www.gnu.org/licenses/>.

"""Merge-join two JSON Lines files sorted by a key field."""

from __future__ import annotations

import json
import logging
import os
from importlib_metadata import version

from enum import Enum
from collections import Counter
from typing import Any, Callable, Dict, Iterator, TextIO, Tuple

import click
from thoth.common import init_logging

from prometheus_client import CollectorRegistry, Gauge, Counter as PromCounter, push_to_gateway
from .lazy_set_ops import sorted_iter_anti_join
from .merge_join import Retention, for_each_join, make_join

prometheus_registry = CollectorRegistry()

__component_version__ = f"{version('thoth-merge-join')}+common{version('thoth-common')}"

init_logging()
_LOGGER = logging.getLogger("thoth.merge_join")

_THOTH_DEPLOYMENT_NAME = os.getenv("THOTH_DEPLOYMENT_NAME", "local")
_THOTH_METRICS_PUSHGATEWAY_URL = os.getenv("PROMETHEUS_PUSHGATEWAY_URL")

# Metrics merge join
_METRIC_INFO = Gauge(
    "thoth_merge_join_job_info",
    "Thoth Merge Join Job information",
    ["env", "version"],
    registry=prometheus_registry,
)

_METRIC_DOCUMENTS_NUMBER = PromCounter(
    "thoth_merge_join_job_documents",
    "Thoth Merge Join Job number of processed documents",
    ["side", "env", "version"],
    registry=prometheus_registry,
)

_METRIC_INFO.labels(_THOTH_DEPLOYMENT_NAME, __component_version__).inc()

# (line number, document)
_Line = Tuple[int, Dict[str, Any]]


class _JoinMode(Enum):
    PULL = "pull"
    PUSH = "push"


class _Tally(Enum):
    LEFT = "left"
    RIGHT = "right"
    EMITTED = "emitted"


def _parse_field(ctx, param, value: str) -> str:
    value = value.strip()
    if not value:
        raise click.BadParameter("Key field name must not be empty")
    return value


def _parse_mode(ctx, param, value: str) -> _JoinMode:
    return _JoinMode(value)


def _read_documents(stream: TextIO, side: _Tally, counts: Counter[_Tally]) -> Iterator[_Line]:
    """Lazily parse a JSON Lines stream, skipping blank lines."""
    for lineno, line in enumerate(stream, start=1):
        if not line.strip():
            continue
        try:
            document = json.loads(line)
        except json.JSONDecodeError as exc:
            raise click.ClickException(f"{stream.name}:{lineno}: invalid JSON: {exc.msg}")
        if not isinstance(document, dict):
            raise click.ClickException(f"{stream.name}:{lineno}: expected a JSON object")
        counts[side] += 1
        yield lineno, document


def _key_getter(field: str, stream: TextIO) -> Callable[[_Line], Any]:
    def _get(item: _Line) -> Any:
        lineno, document = item
        try:
            return document[field]
        except KeyError:
            raise click.ClickException(f"{stream.name}:{lineno}: missing key field {field!r}") from None

    return _get


def _emit(left: _Line, right: _Line) -> None:
    click.echo(json.dumps({"left": left[1], "right": right[1]}, sort_keys=True))


@click.command()
@click.option("--debug", is_flag=True, help="Run in a debug mode", envvar="THOTH_MERGE_JOIN_DEBUG", default=False)
@click.option(
    "--left-key",
    type=str,
    help="Field of left documents to join on.",
    envvar="THOTH_MERGE_JOIN_LEFT_KEY",
    default="id",
    callback=_parse_field,
)
@click.option(
    "--right-key",
    type=str,
    help="Field of right documents to join on.",
    envvar="THOTH_MERGE_JOIN_RIGHT_KEY",
    default="id",
    callback=_parse_field,
)
@click.option(
    "--mode",
    type=click.Choice([m.value for m in _JoinMode]),
    help="Pull matched pairs one by one or let the join push them.",
    envvar="THOTH_MERGE_JOIN_MODE",
    default=_JoinMode.PULL.value,
    callback=_parse_mode,
)
@click.option(
    "--anti",
    is_flag=True,
    help="Print left documents without a matching right document.",
    envvar="THOTH_MERGE_JOIN_ANTI",
    default=False,
)
@click.option(
    "--copy",
    "copy_documents",
    is_flag=True,
    help="Hold buffered documents by copy instead of by reference.",
    envvar="THOTH_MERGE_JOIN_COPY",
    default=False,
)
@click.argument("left", type=click.Path(exists=True, dir_okay=False, allow_dash=True), metavar="LEFT.jsonl")
@click.argument("right", type=click.Path(exists=True, dir_okay=False, allow_dash=True), metavar="RIGHT.jsonl")
def merge_join(
    left: str,
    right: str,
    debug: bool,
    left_key: str,
    right_key: str,
    mode: _JoinMode,
    anti: bool,
    copy_documents: bool,
) -> None:
    """Join two JSON Lines files, each sorted by its key field, and print matched pairs."""
    if debug:
        _LOGGER.setLevel(logging.DEBUG)
        _LOGGER.debug("Debug mode is on.")

    if left == "-" and right == "-":
        raise click.BadParameter("Only one of LEFT and RIGHT can be read from stdin", param_hint="RIGHT.jsonl")

    _LOGGER.info("Running merge join job in version %r", __component_version__)
    _LOGGER.info("Joining %r on %r with %r on %r", left, left_key, right, right_key)

    with click.open_file(left) as left_stream, click.open_file(right) as right_stream:
        _join_streams(left_stream, right_stream, left_key, right_key, mode, anti, copy_documents)


def _join_streams(
    left: TextIO, right: TextIO, left_key: str, right_key: str, mode: _JoinMode, anti: bool, copy_documents: bool
) -> None:
    counts: Counter[_Tally] = Counter()
    left_documents = _read_documents(left, _Tally.LEFT, counts)
    right_documents = _read_documents(right, _Tally.RIGHT, counts)
    key_left = _key_getter(left_key, left)
    key_right = _key_getter(right_key, right)
    retention = Retention.COPY if copy_documents else Retention.REFERENCE

    try:
        if anti:
            for lineno, document in sorted_iter_anti_join(left_documents, right_documents, key_left, key_right):
                counts[_Tally.EMITTED] += 1
                click.echo(json.dumps(document, sort_keys=True))
        elif mode is _JoinMode.PUSH:
            counts[_Tally.EMITTED] = for_each_join(
                left_documents, right_documents, key_left, key_right, _emit, retention=retention
            )
        else:
            cursor = make_join(left_documents, right_documents, key_left, key_right, retention=retention)
            pair = cursor.next()
            while pair is not None:
                _emit(*pair)
                pair = cursor.next()
            counts[_Tally.EMITTED] = cursor.matches

        _LOGGER.info(
            "Summary of the merge join: %i left, %i right, %i %s",
            counts[_Tally.LEFT],
            counts[_Tally.RIGHT],
            counts[_Tally.EMITTED],
            "unmatched" if anti else "matched",
        )
    finally:
        if _THOTH_METRICS_PUSHGATEWAY_URL:
            for side, amount in counts.items():
                _METRIC_DOCUMENTS_NUMBER.labels(
                    side=side.value,
                    env=_THOTH_DEPLOYMENT_NAME,
                    version=__component_version__,
                ).inc(amount)
            try:
                _LOGGER.debug(f"Submitting metrics to Prometheus pushgateway {_THOTH_METRICS_PUSHGATEWAY_URL}")
                push_to_gateway(
                    _THOTH_METRICS_PUSHGATEWAY_URL,
                    job="merge-join-job",
                    registry=prometheus_registry,
                )
            except Exception as e:
                _LOGGER.exception(f"An error occurred pushing the metrics: {str(e)}")


__name__ == "__main__" and merge_join()
