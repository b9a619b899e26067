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

"""Field Resolver — maps field names and tokens to SourceRecord values.

Resolution is total: anything not in the lookup tables resolves to None
("unbound") and the caller still renders it as an empty editable field.
"""

from __future__ import annotations

import re

from pdf_autofill.config import FillConfig
from pdf_autofill.models import FieldDescriptor, SourceBinding, SourceRecord

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def normalize_field_name(name: str) -> str:
    """Lowercase and strip every non-alphanumeric character."""
    return _NON_ALNUM.sub("", name.lower())


def format_date(value: str) -> str:
    """Show an ISO date (YYYY-MM-DD) as MM/DD/YYYY; leave anything else."""
    match = _ISO_DATE.match(value)
    if match:
        year, month, day = match.groups()
        return f"{month}/{day}/{year}"
    return value


class FieldResolver:
    def __init__(self, config: FillConfig) -> None:
        self.config = config
        self._date_keys = set(config.date_keys)

    def resolve_field_name(self, name: str) -> SourceBinding | None:
        return self.config.field_names.get(normalize_field_name(name))

    def resolve_token(self, token: str) -> SourceBinding | None:
        """Look up a token by its literal text; a dropped "}" is tolerated."""
        if not token.endswith("}"):
            token += "}"
        return self.config.tokens.get(token)

    def value_for(self, binding: SourceBinding | None, record: SourceRecord) -> str:
        if binding is None:
            return ""
        value = record.get(binding)
        if binding.key in self._date_keys:
            value = format_date(value)
        return value

    def auto_select(self, group_key: str, record: SourceRecord) -> str | None:
        """Option token to pre-select in a group, or None.

        A present source value goes through the group's value_map; with
        no value the group's default option applies.
        """
        group = self.config.group_named(group_key)
        if group is None or group.source is None:
            return group.default_option if group else None
        value = record.get(group.source)
        if not value:
            return group.default_option
        return group.value_map.get(value)

    def fill(self, fields: list[FieldDescriptor], record: SourceRecord) -> None:
        """Pre-fill every field from the record, in place; unbound ones go blank."""
        for field in fields:
            field.current_value = self.value_for(field.binding, record)
