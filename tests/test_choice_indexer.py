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

"""Tests for the radio/option extractor: passes A/B/C, grouping, auto-select."""

import pytest

from pdf_autofill.config import FillConfig
from pdf_autofill.handlers.choice_indexer import (
    extract_choices,
    extract_choices_from_pages,
    group_for_option,
    select_choice,
)
from pdf_autofill.loader import template_from_bytes
from pdf_autofill.models import SourceRecord
from pdf_autofill.resolver import FieldResolver
from tests.conftest import make_page, make_run


@pytest.fixture
def resolver(config) -> FieldResolver:
    return FieldResolver(config)


def _groups(groups):
    return {g.group_key: g for g in groups}


def _tokens(group):
    return [o.option_token for o in group.options]


def _disability_config(**group_extra) -> FillConfig:
    return FillConfig.model_validate({
        "choice_groups": [{
            "name": "disability",
            "first": 5,
            "last": 12,
            "source": {"namespace": "subject", "key": "disabilityCondition"},
            "value_map": {"A": "5", "B": "6", "C": "9"},
            **group_extra,
        }],
    })


# ── Detection passes ─────────────────────────────────────────────────────────


class TestDetection:
    def test_whole_token_on_one_run(self, resolver) -> None:
        page = make_page([make_run("{radio_id_7}", 50, 100)])
        groups = _groups(extract_choices_from_pages([page], resolver))
        assert _tokens(groups["disabilityCondition"]) == ["7"]

    def test_split_on_same_line_matches_unsplit(self, resolver) -> None:
        split = make_page([
            make_run("{radio", 50, 100),
            make_run("_id_7}", 86, 100),
        ])
        whole = make_page([make_run("{radio_id_7}", 50, 100)])

        split_groups = extract_choices_from_pages([split], resolver)
        whole_groups = extract_choices_from_pages([whole], resolver)

        assert [(g.group_key, _tokens(g)) for g in split_groups] == [
            (g.group_key, _tokens(g)) for g in whole_groups
        ]
        assert split_groups[0].options[0].x == pytest.approx(50)

    def test_split_on_offset_lines_paired_by_proximity(self, resolver) -> None:
        page = make_page([
            make_run("{radio", 50, 100),
            make_run("_id_7}", 96, 112),
        ])
        groups = _groups(extract_choices_from_pages([page], resolver))
        option = groups["disabilityCondition"].options[0]
        assert option.option_token == "7"
        assert option.x == pytest.approx(50)

    def test_suffix_outside_window_not_paired(self, resolver) -> None:
        page = make_page([
            make_run("{radio", 50, 100),
            make_run("_id_7}", 200, 112),
        ])
        assert extract_choices_from_pages([page], resolver) == []

    def test_prefix_pairs_with_nearest_suffix(self, resolver) -> None:
        page = make_page([
            make_run("{radio", 50, 100),
            make_run("_id_8}", 120, 100),
            make_run("_id_6}", 90, 110),
        ])
        groups = _groups(extract_choices_from_pages([page], resolver))
        assert "6" in _tokens(groups["disabilityCondition"])

    def test_loose_single_run_spelling(self, resolver) -> None:
        page = make_page([make_run("{radio id 3}", 50, 100)])
        groups = _groups(extract_choices_from_pages([page], resolver))
        assert _tokens(groups["identification"]) == ["3"]

    def test_named_group_tokens(self, resolver) -> None:
        page = make_page([
            make_run("{radio_idtype_dl}", 50, 100),
            make_run("{radio_idtype_passport}", 250, 100),
        ])
        groups = _groups(extract_choices_from_pages([page], resolver))
        assert _tokens(groups["idtype"]) == ["dl", "passport"]

    def test_duplicates_across_passes_and_pages_collapse(self, resolver) -> None:
        pages = [
            make_page([make_run("{radio_id_2}", 50, 100)], page=0),
            make_page([make_run("{radio_id_2}", 80, 100)], page=1),
        ]
        (group,) = extract_choices_from_pages(pages, resolver)
        assert len(group.options) == 1
        assert group.options[0].page == 0

    def test_options_sorted_by_position(self, resolver) -> None:
        page = make_page([
            make_run("{radio_id_2}", 50, 140),
            make_run("{radio_id_1}", 50, 100),
        ])
        (group,) = extract_choices_from_pages([page], resolver)
        assert _tokens(group) == ["1", "2"]


# ── Grouping ─────────────────────────────────────────────────────────────────


class TestGrouping:
    def test_number_in_configured_range(self, config) -> None:
        assert group_for_option("id", "3", config) == ("identification", "3")
        assert group_for_option("id", "12", config) == ("disabilityCondition", "12")

    def test_number_outside_every_range(self, config) -> None:
        assert group_for_option("id", "42", config) == ("id_42", "42")

    def test_leading_zeros_dropped(self, config) -> None:
        assert group_for_option("id", "07", config) == ("disabilityCondition", "7")

    def test_named_group_passes_through(self, config) -> None:
        assert group_for_option("idtype", "dl", config) == ("idtype", "dl")


# ── Auto-select and clicks ───────────────────────────────────────────────────


class TestSelection:
    def _page(self):
        return make_page([
            make_run("{radio_id_7}", 50, 100),
            make_run("{radio_id_8}", 50, 130),
            make_run("{radio_id_9}", 50, 160),
        ])

    def test_auto_select_from_record(self) -> None:
        resolver = FieldResolver(_disability_config())
        record = SourceRecord(subject={"disabilityCondition": "C"})

        (group,) = extract_choices_from_pages([self._page()], resolver, record)

        assert {o.option_token: o.selected for o in group.options} == {
            "7": False, "8": False, "9": True,
        }

    def test_default_option_when_value_missing(self) -> None:
        resolver = FieldResolver(_disability_config(default_option="8"))
        (group,) = extract_choices_from_pages([self._page()], resolver, SourceRecord())
        assert group.selected_option.option_token == "8"

    def test_unmapped_value_selects_nothing(self) -> None:
        resolver = FieldResolver(_disability_config())
        record = SourceRecord(subject={"disabilityCondition": "Z"})
        (group,) = extract_choices_from_pages([self._page()], resolver, record)
        assert group.selected_option is None

    def test_no_record_selects_nothing(self) -> None:
        resolver = FieldResolver(_disability_config(default_option="8"))
        (group,) = extract_choices_from_pages([self._page()], resolver)
        assert group.selected_option is None

    def test_click_clears_siblings(self) -> None:
        resolver = FieldResolver(_disability_config())
        record = SourceRecord(subject={"disabilityCondition": "C"})
        groups = extract_choices_from_pages([self._page()], resolver, record)

        assert select_choice(groups, "disability", "7") is True

        selected = [o.option_token for o in groups[0].options if o.selected]
        assert selected == ["7"]

    def test_click_unknown_option_changes_nothing(self) -> None:
        resolver = FieldResolver(_disability_config())
        record = SourceRecord(subject={"disabilityCondition": "C"})
        groups = extract_choices_from_pages([self._page()], resolver, record)

        assert select_choice(groups, "disability", "99") is False
        assert select_choice(groups, "nope", "7") is False
        assert groups[0].selected_option.option_token == "9"


# ── Real PDFs ────────────────────────────────────────────────────────────────


class TestExtractFromPdf:
    def test_groups_found(self, radio_pdf: bytes, resolver) -> None:
        groups = _groups(extract_choices(template_from_bytes(radio_pdf), resolver))
        assert _tokens(groups["identification"]) == ["1", "2"]
        assert sorted(_tokens(groups["disabilityCondition"])) == ["7", "9"]
        assert sorted(_tokens(groups["idtype"])) == ["dl", "passport"]

    def test_auto_fill_from_record(self, radio_pdf: bytes, resolver, record) -> None:
        groups = _groups(extract_choices(template_from_bytes(radio_pdf), resolver, record))
        assert groups["identification"].selected_option.option_token == "2"
        assert groups["idtype"].selected_option.option_token == "passport"
        assert groups["disabilityCondition"].selected_option.option_token == "9"
