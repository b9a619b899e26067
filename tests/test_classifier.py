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

"""Tests for placeholder/AcroForm mode classification."""

from pdf_autofill.classifier import classify, token_pattern
from pdf_autofill.loader import template_from_bytes
from pdf_autofill.models import FillMode


class TestTokenPattern:
    def test_known_token(self, config) -> None:
        assert token_pattern(config).search("Dear {firstName},")

    def test_closing_brace_optional(self, config) -> None:
        assert token_pattern(config).search("Dear {firstName,")

    def test_case_insensitive(self, config) -> None:
        assert token_pattern(config).search("{FIRSTNAME}")

    def test_radio_prefix_alone(self, config) -> None:
        assert token_pattern(config).search("{ radio")

    def test_unknown_token_ignored(self, config) -> None:
        assert not token_pattern(config).search("{favoriteColor}")

    def test_plain_braces_ignored(self, config) -> None:
        assert not token_pattern(config).search("a {} b")


class TestClassify:
    def test_tokens_mean_placeholder(self, placeholder_pdf: bytes, config) -> None:
        assert classify(template_from_bytes(placeholder_pdf), config) == FillMode.PLACEHOLDER

    def test_radio_only_template_is_placeholder(self, radio_pdf: bytes, config) -> None:
        assert classify(template_from_bytes(radio_pdf), config) == FillMode.PLACEHOLDER

    def test_mapped_widgets_mean_acroform(self, acroform_pdf: bytes, config) -> None:
        assert classify(template_from_bytes(acroform_pdf), config) == FillMode.ACROFORM

    def test_tokens_win_over_widgets(self, mixed_pdf: bytes, config) -> None:
        assert classify(template_from_bytes(mixed_pdf), config) == FillMode.PLACEHOLDER

    def test_nothing_recognised_defaults_to_placeholder(self, plain_pdf: bytes, config) -> None:
        assert classify(template_from_bytes(plain_pdf), config) == FillMode.PLACEHOLDER

    def test_tokens_on_later_page(self, two_page_pdf: bytes, config) -> None:
        assert classify(template_from_bytes(two_page_pdf), config) == FillMode.PLACEHOLDER
