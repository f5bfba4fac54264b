import re
from typing import Iterable, Iterator, Mapping, Tuple, Union

from document_translation_client.exceptions import GlossaryValidationError

TERM_SEPARATOR = "\t"
CSV_SEPARATOR = ","
_LINE_SEPARATORS = re.compile(r"\r\n|\n|\r")
# space characters only, so control characters at either end still fail validation
_WHITESPACE = " \t\n\v\f\r\u00a0\u1680\u2000\u2001\u2002\u2003\u2004\u2005\u2006\u2007\u2008\u2009\u200a\u202f\u205f\u3000"

EntryPairs = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def trim_term(term: str) -> str:
    return term.strip(_WHITESPACE)


def validate_glossary_term(term: str) -> None:
    """Raises GlossaryValidationError if ``term`` is blank or contains control or newline characters"""
    trimmed = trim_term(term)
    if not trimmed:
        raise GlossaryValidationError(f'Term "{term}" contains no non-whitespace characters')

    for ch in trimmed:
        code = ord(ch)
        if code <= 31 or 128 <= code <= 159 or ch in ("\u2028", "\u2029"):
            raise GlossaryValidationError(
                f'Term "{term}" contains invalid character: {ch!r} (U+{code:04X})'
            )


class GlossaryEntries(Mapping[str, str]):
    """Ordered, read-only table of source term to target term.

    Terms are trimmed and validated when the table is built; pass
    ``skip_checks=True`` for data that was already validated, e.g. entries
    returned by the service.
    """

    def __init__(self, entries: EntryPairs, skip_checks: bool = False):
        pairs = entries.items() if isinstance(entries, Mapping) else entries
        table = {}
        for source, target in pairs:
            source = trim_term(source)
            target = trim_term(target)
            if not skip_checks:
                validate_glossary_term(source)
                validate_glossary_term(target)
                if source in table:
                    raise GlossaryValidationError(f'Entries contain duplicate source term: "{source}"')
            table[source] = target

        if not skip_checks and not table:
            raise GlossaryValidationError("Entries contain no entries")

        self._entries = table
        self._skip_checks = skip_checks

    @property
    def skip_checks(self) -> bool:
        return self._skip_checks

    @classmethod
    def from_tsv(cls, content: str, skip_checks: bool = False) -> "GlossaryEntries":
        return parse_entries(content, TERM_SEPARATOR, skip_checks)

    @classmethod
    def from_csv(cls, content: str, skip_checks: bool = False) -> "GlossaryEntries":
        return parse_entries(content, CSV_SEPARATOR, skip_checks)

    def to_tsv(self) -> str:
        return serialize_entries(self, self._skip_checks)

    def __getitem__(self, source: str) -> str:
        return self._entries[source]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        pairs = ", ".join(f"[{source!r}, {target!r}]" for source, target in self._entries.items())
        return f"GlossaryEntries[{pairs}]"


def parse_entries(
    content: str, delimiter: str = TERM_SEPARATOR, skip_checks: bool = False
) -> GlossaryEntries:
    """Parses delimiter-separated ``source<delimiter>target`` lines into a table.

    Lines may end with CR, LF or CRLF; blank lines are ignored. Raises
    GlossaryValidationError naming the offending line for a missing or
    repeated delimiter, an invalid term or a duplicated source term, and for
    content without any entries.
    """
    pairs = []
    seen = set()
    for line_number, line in enumerate(_LINE_SEPARATORS.split(content), start=1):
        line_trimmed = trim_term(line)
        if not line_trimmed:
            continue

        separator_pos = line_trimmed.find(delimiter)
        if separator_pos == -1:
            raise GlossaryValidationError(
                f"Entry on line {line_number} does not contain separator: {line}"
            )

        source = trim_term(line_trimmed[:separator_pos])
        target = trim_term(line_trimmed[separator_pos + len(delimiter):])
        if not skip_checks:
            if delimiter in target:
                raise GlossaryValidationError(
                    f"Entry on line {line_number} contains more than one term separator: {line}"
                )
            validate_glossary_term(source)
            validate_glossary_term(target)

        if source in seen:
            raise GlossaryValidationError(
                f'Entry on line {line_number} duplicates source term "{source}"'
            )
        seen.add(source)
        pairs.append((source, target))

    if not skip_checks and not pairs:
        raise GlossaryValidationError("Glossary content contains no entries")

    return GlossaryEntries(pairs, skip_checks=skip_checks)


def serialize_entries(entries: Mapping[str, str], skip_checks: bool = False) -> str:
    """Joins the entries as tab-separated lines in insertion order"""
    if not entries and not skip_checks:
        raise GlossaryValidationError("Entries contain no entries")
    return "\n".join(f"{source}{TERM_SEPARATOR}{target}" for source, target in entries.items())
