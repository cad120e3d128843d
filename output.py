"""
Output rendering for slackline.

Two modes: human-readable text for terminals and JSON for scripts and agents.
JSON output is the machine contract, so --quiet never suppresses it; quiet only
silences human output and status messages. Errors always reach stderr.
"""

import json
from enum import Enum
from typing import Any, Sequence

import click

from models import Record

SEPARATOR = "─" * 40


class OutputFormat(Enum):
    HUMAN = "human"
    JSON = "json"


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


class Output:
    """Renders records to stdout in the selected format"""

    def __init__(self, json: bool = False, quiet: bool = False):
        self.format = OutputFormat.JSON if json else OutputFormat.HUMAN
        self.quiet = quiet

    def is_json(self) -> bool:
        return self.format == OutputFormat.JSON

    def _write(self, text: str, err: bool = False):
        # One write per render call so a record or list is never emitted partially
        click.echo(text, err=err)

    def print(self, record: Record):
        """Render a single record"""
        if self.is_json():
            self._write(to_json(record.to_dict()))
        elif not self.quiet:
            self._write(record.to_text())

    def print_list(self, records: Sequence[Record], title: str):
        """Render a homogeneous list of records, preserving input order"""
        if self.is_json():
            self._write(to_json([record.to_dict() for record in records]))
            return

        if self.quiet:
            return

        lines = [click.style(title, bold=True), SEPARATOR]
        lines.extend(record.to_text() for record in records)
        lines.append(f"\n{len(records)} items")
        self._write("\n".join(lines))

    def success(self, message: str):
        if not self.quiet and not self.is_json():
            self._write(f"{click.style('✅', fg='green')} {message}")

    def status(self, message: str):
        if not self.quiet and not self.is_json():
            self._write(f"⏳ {message}")

    def error(self, message: str):
        self._write(f"{click.style('❌', fg='red')} {message}", err=True)
