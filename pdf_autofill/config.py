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

"""Integrator-supplied configuration: lookup tables, choice groups, offsets.

All tables are plain data validated by pydantic and passed explicitly into
the resolver and extractors, so each template family can carry its own.
load_config() reads a JSON file; without a path it falls back to the
bundled default_config.json.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, model_validator

from pdf_autofill.models import OffsetCorrection, SourceBinding

# Environment variable naming an alternative config file
CONFIG_ENV = "PDF_AUTOFILL_CONFIG"

DEFAULT_CONFIG_PATH = Path(__file__).with_name("default_config.json")


class LayoutConfig(BaseModel):
    """Geometry constants, in content units."""
    line_tolerance: float = 3.0
    width_padding: float = 4.0
    right_margin: float = 36.0
    min_width: float = 40.0
    text_font_size: float = 10.0
    mark_ratio: float = 0.3
    min_mark_radius: float = 4.0
    # Pass C pairing window for fragmented radio tokens
    fragment_dx: float = 60.0
    fragment_dy: float = 20.0


class ChoiceGroupConfig(BaseModel):
    """A named choice group.

    first/last: inclusive range of numeric option suffixes ({radio_id_<n>})
    that belong to this group. Named tokens ({radio_<name>_<option>})
    attach by name instead and need no range.
    value_map: source value -> option token to auto-select.
    """
    name: str
    first: int | None = None
    last: int | None = None
    source: SourceBinding | None = None
    value_map: dict[str, str] = Field(default_factory=dict)
    default_option: str | None = None

    @model_validator(mode="after")
    def _check_range(self) -> ChoiceGroupConfig:
        if (self.first is None) != (self.last is None):
            raise ValueError(
                f"Choice group '{self.name}' needs both first and last, or neither"
            )
        if self.first is not None and self.first > self.last:
            raise ValueError(
                f"Choice group '{self.name}' has first ({self.first}) > last ({self.last})"
            )
        if (
            self.first is not None
            and self.default_option is not None
            and self.default_option.isdigit()
            and not self.first <= int(self.default_option) <= self.last
        ):
            raise ValueError(
                f"Choice group '{self.name}' default_option "
                f"{self.default_option} is outside {self.first}-{self.last}"
            )
        return self

    def contains(self, number: int) -> bool:
        return self.first is not None and self.first <= number <= self.last


class FillConfig(BaseModel):
    field_names: dict[str, SourceBinding] = Field(default_factory=dict)
    tokens: dict[str, SourceBinding] = Field(default_factory=dict)
    choice_groups: list[ChoiceGroupConfig] = Field(default_factory=list)
    offsets: dict[str, OffsetCorrection] = Field(default_factory=dict)
    date_keys: list[str] = Field(default_factory=list)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)

    @model_validator(mode="after")
    def _check_ranges_disjoint(self) -> FillConfig:
        ranged = sorted(
            (g for g in self.choice_groups if g.first is not None),
            key=lambda g: g.first,
        )
        for prev, cur in zip(ranged, ranged[1:]):
            if cur.first <= prev.last:
                raise ValueError(
                    f"Choice groups '{prev.name}' and '{cur.name}' overlap"
                )
        return self

    def group_for_number(self, number: int) -> ChoiceGroupConfig | None:
        for group in self.choice_groups:
            if group.contains(number):
                return group
        return None

    def group_named(self, name: str) -> ChoiceGroupConfig | None:
        wanted = name.lower()
        for group in self.choice_groups:
            if group.name.lower() == wanted:
                return group
        return None

    def offset_for(self, counterpart_last_name: str) -> OffsetCorrection:
        return self.offsets.get(
            counterpart_last_name.strip().lower(), OffsetCorrection()
        )

    def token_names(self) -> list[str]:
        """Bare token names ({firstName} -> firstName) from the token table."""
        return [t.strip("{}") for t in self.tokens]


def load_config(path: Path | str | None = None) -> FillConfig:
    """Load and validate a FillConfig from JSON."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Config file not found: {config_path}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in config file: {config_path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Config file must contain an object: {config_path}")

    try:
        return FillConfig.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid config schema: {config_path}\n{exc}") from exc


def config_from_env(path: str | None = None) -> FillConfig:
    """Load the config named by path, else $PDF_AUTOFILL_CONFIG, else defaults."""
    return load_config(path or os.environ.get(CONFIG_ENV) or None)
