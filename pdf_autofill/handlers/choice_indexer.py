# Copyright (C) 2025 the contributors
# SPDX-License-Identifier: AGPL-3.0-or-later
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""Radio/Option Extractor — finds {radio_...} choice tokens.

Text extractors often split one token over several runs, so three
independent passes feed one set keyed by (group, option):

- Pass A matches the strict token pattern on whole visual lines.
- Pass B matches a looser pattern inside single runs.
- Pass C pairs a run ending in a bare "{radio" prefix with the nearest
  run starting with an "_id<n>" suffix.

Numeric options ({radio_id_<n>}) are assigned to groups by the configured
number ranges; named tokens ({radio_<group>_<option>}) name their group.
"""

from __future__ import annotations

import logging
import math
import re

from pdf_autofill.config import FillConfig
from pdf_autofill.loader import TemplateDocument
from pdf_autofill.models import ChoiceGroup, ChoiceOption, PageText, SourceRecord, TextRun
from pdf_autofill.resolver import FieldResolver
from pdf_autofill.text_layer import group_lines, read_pages

logger = logging.getLogger(__name__)

LINE_TOKEN_RE = re.compile(r"\{radio_([A-Za-z0-9]+?)_(\w+)\}?")
RUN_TOKEN_RE = re.compile(
    r"\{?\s*_?\s*radio\s*_?\s*id\s*_?\s*(\d+)\s*\}?", re.IGNORECASE
)
PREFIX_RE = re.compile(r"\{\s*radio\s*_?\s*$", re.IGNORECASE)
SUFFIX_RE = re.compile(r"^\s*_?\s*id\s*_?\s*(\d+)\s*\}?", re.IGNORECASE)

# Token group name used by numbered options
NUMBERED_GROUP = "id"


def group_for_option(token_group: str, option: str, config: FillConfig) -> tuple[str, str]:
    """Map a token's (group, option) pair to (group key, option token).

    Numbered options go to the configured range that contains them, or to
    a group of their own ("id_<n>") when no range does.
    """
    if token_group.lower() == NUMBERED_GROUP and option.isdigit():
        number = int(option)
        group = config.group_for_number(number)
        return (group.name if group else f"{NUMBERED_GROUP}_{number}", str(number))
    return token_group, option


def extract_choices(
    template: TemplateDocument,
    resolver: FieldResolver,
    record: SourceRecord | None = None,
) -> list[ChoiceGroup]:
    doc = template.open()
    pages = read_pages(doc)
    doc.close()
    return extract_choices_from_pages(pages, resolver, record)


def extract_choices_from_pages(
    pages: list[PageText],
    resolver: FieldResolver,
    record: SourceRecord | None = None,
) -> list[ChoiceGroup]:
    config = resolver.config
    found: dict[tuple[str, str], ChoiceOption] = {}

    for page in pages:
        for name, options in (
            ("A", _pass_line(page, config)),
            ("B", _pass_run(page, config)),
            ("C", _pass_proximity(page, config)),
        ):
            added = 0
            for option in options:
                key = (option.group_key, option.option_token)
                if key not in found:
                    found[key] = option
                    added += 1
            logger.debug(
                "Page %d pass %s: %d option(s), %d new", page.page, name, len(options), added
            )

    groups = _build_groups(list(found.values()))
    if record is not None:
        auto_fill(groups, resolver, record)
    logger.info(
        "Found %d choice option(s) in %d group(s)", len(found), len(groups)
    )
    return groups


def auto_fill(groups: list[ChoiceGroup], resolver: FieldResolver, record: SourceRecord) -> None:
    """Select each group's option derived from the record, in place."""
    for group in groups:
        option = resolver.auto_select(group.group_key, record)
        if option is not None:
            group.select(option)


def select_choice(groups: list[ChoiceGroup], group_key: str, option_token: str) -> bool:
    """Radio-style selection: the chosen option on, its siblings off."""
    for group in groups:
        if group.group_key == group_key:
            return group.select(option_token)
    return False


def _pass_line(page: PageText, config: FillConfig) -> list[ChoiceOption]:
    options: list[ChoiceOption] = []
    for line in group_lines(page.runs, config.layout.line_tolerance):
        for match in LINE_TOKEN_RE.finditer(line.text):
            run, _ = line.locate(match.start())
            x = line.x_at(match.start())
            group_key, option = group_for_option(match.group(1), match.group(2), config)
            options.append(_option(
                group_key, option, page.page, x, run,
                line.x_end(match.end()) - x,
            ))
    return options


def _pass_run(page: PageText, config: FillConfig) -> list[ChoiceOption]:
    options: list[ChoiceOption] = []
    for run in page.runs:
        for match in RUN_TOKEN_RE.finditer(run.text):
            x = run.x_at(match.start())
            group_key, option = group_for_option(NUMBERED_GROUP, match.group(1), config)
            options.append(_option(
                group_key, option, page.page, x, run,
                _run_x_end(run, match.end()) - x,
            ))
    return options


def _pass_proximity(page: PageText, config: FillConfig) -> list[ChoiceOption]:
    layout = config.layout
    prefixes: list[tuple[TextRun, int]] = []
    suffixes: list[tuple[TextRun, re.Match[str]]] = []

    for run in page.runs:
        if RUN_TOKEN_RE.search(run.text) and not PREFIX_RE.search(run.text):
            continue
        prefix = PREFIX_RE.search(run.text)
        if prefix:
            prefixes.append((run, prefix.start()))
            continue
        suffix = SUFFIX_RE.search(run.text)
        if suffix:
            suffixes.append((run, suffix))

    options: list[ChoiceOption] = []
    used: set[int] = set()
    for run, start in prefixes:
        best: tuple[float, int] | None = None
        for idx, (candidate, _) in enumerate(suffixes):
            if idx in used:
                continue
            dx = abs(candidate.x0 - run.x1)
            dy = abs(candidate.baseline - run.baseline)
            if dx > layout.fragment_dx or dy > layout.fragment_dy:
                continue
            distance = math.hypot(dx, dy)
            if best is None or distance < best[0]:
                best = (distance, idx)
        if best is None:
            continue
        used.add(best[1])
        suffix_run, suffix = suffixes[best[1]]
        x = run.x_at(start)
        group_key, option = group_for_option(NUMBERED_GROUP, suffix.group(1), config)
        options.append(_option(
            group_key, option, page.page, x, run,
            _run_x_end(suffix_run, suffix.end()) - x,
        ))
    return options


def _option(
    group_key: str, option: str, page: int, x: float, run: TextRun, token_width: float
) -> ChoiceOption:
    return ChoiceOption(
        group_key=group_key,
        option_token=option,
        page=page,
        x=x,
        y=run.top,
        baseline=run.baseline,
        height=run.bottom - run.top,
        token_width=max(token_width, 0.0),
        font_size=run.font_size,
    )


def _run_x_end(run: TextRun, end: int) -> float:
    if 0 < end < len(run.char_x):
        return run.char_x[end]
    return run.x1


def _build_groups(options: list[ChoiceOption]) -> list[ChoiceGroup]:
    groups: dict[str, ChoiceGroup] = {}
    for option in options:
        groups.setdefault(option.group_key, ChoiceGroup(group_key=option.group_key))
        groups[option.group_key].options.append(option)
    for group in groups.values():
        group.options.sort(key=lambda o: (o.page, o.y, o.x))
    return list(groups.values())
