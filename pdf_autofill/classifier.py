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

"""Mode Classifier — decides between placeholder and AcroForm fill.

Token text is authored for this system on purpose, so any recognized token
anywhere wins outright and interactive fields are never inspected. Only a
token-free template is checked for interactive fields whose normalized
names are in the lookup table. Everything else defaults to placeholder
mode, which degrades to "no fields found".
"""

from __future__ import annotations

import logging
import re

import fitz

from pdf_autofill.config import FillConfig
from pdf_autofill.loader import TemplateDocument
from pdf_autofill.models import FillMode
from pdf_autofill.resolver import normalize_field_name
from pdf_autofill.text_layer import page_plain_text, read_page

logger = logging.getLogger(__name__)

# Radio tokens are recognised by prefix alone; extractors often split them
_RADIO_PREFIX = r"\{\s*radio"


def token_pattern(config: FillConfig) -> re.Pattern[str]:
    """Pattern for any known token, closing bracket optional."""
    names = sorted(config.token_names(), key=len, reverse=True)
    alternatives = [re.escape(n) for n in names if n]
    parts = [_RADIO_PREFIX]
    if alternatives:
        parts.insert(0, r"\{(?:" + "|".join(alternatives) + r")\}?")
    return re.compile("|".join(parts), re.IGNORECASE)


def classify(template: TemplateDocument, config: FillConfig) -> FillMode:
    doc = template.open()
    try:
        return classify_document(doc, config)
    finally:
        doc.close()


def classify_document(doc: fitz.Document, config: FillConfig) -> FillMode:
    if has_tokens(doc, config):
        logger.info("Template has fill tokens; using placeholder mode")
        return FillMode.PLACEHOLDER

    matched = matching_widget_names(doc, config)
    if matched:
        logger.info(
            "Template has %d mapped interactive field(s); using acroform mode",
            len(matched),
        )
        return FillMode.ACROFORM

    logger.info("No tokens or mapped interactive fields; defaulting to placeholder mode")
    return FillMode.PLACEHOLDER


def has_tokens(doc: fitz.Document, config: FillConfig) -> bool:
    pattern = token_pattern(config)
    tolerance = config.layout.line_tolerance
    for page_num in range(doc.page_count):
        text = page_plain_text(read_page(doc[page_num]), tolerance)
        if pattern.search(text):
            return True
    return False


def matching_widget_names(doc: fitz.Document, config: FillConfig) -> list[str]:
    """Names of interactive fields whose normalized form is a known key."""
    matched: list[str] = []
    for page_num in range(doc.page_count):
        for widget in doc[page_num].widgets():
            name = widget.field_name or ""
            if normalize_field_name(name) in config.field_names:
                matched.append(name)
    return matched
