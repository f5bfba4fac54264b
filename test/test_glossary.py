import pytest
from document_translation_client.exceptions import ErrorKind, GlossaryValidationError
from document_translation_client.glossary import (
    GlossaryEntries,
    parse_entries,
    serialize_entries,
    validate_glossary_term,
)


def test_parse_handles_mixed_line_endings():
    entries = parse_entries("Hello\tHallo\r\nWorld\tWelt\rCat\tKatze\n\n  \nDog\tHund\n")

    assert list(entries.items()) == [
        ("Hello", "Hallo"),
        ("World", "Welt"),
        ("Cat", "Katze"),
        ("Dog", "Hund"),
    ]


def test_parse_trims_terms():
    entries = parse_entries("  Hello \t Hallo  ")

    assert entries == {"Hello": "Hallo"}


def test_serialize_then_parse_keeps_entries_and_order():
    entries = GlossaryEntries({"zeta": "Zeta", "alpha": "Alpha", "mid term": "Mittelbegriff"})

    serialized = serialize_entries(entries)

    assert serialized == "zeta\tZeta\nalpha\tAlpha\nmid term\tMittelbegriff"
    assert list(parse_entries(serialized).items()) == list(entries.items())


@pytest.mark.parametrize(
    "content, message",
    [
        ("", "contains no entries"),
        ("\n\r\n  \n", "contains no entries"),
        ("Hello\tHallo\nWorld Welt", "Entry on line 2 does not contain separator"),
        ("Hello\tHallo\tSalut", "Entry on line 1 contains more than one term separator"),
        ("Hello\tHallo\n\nHello\tServus", 'Entry on line 3 duplicates source term "Hello"'),
        ("Hel\x07lo\tHallo", "contains invalid character"),
        ("Hello\tHal\u2028lo", "contains invalid character"),
        ("Hello\tHal\x85lo", "contains invalid character"),
        ("Hello\x1f\tHallo", "contains invalid character"),
        ("Hello\tHallo\x1c", "contains invalid character"),
        ("\x1eHello\tHallo", "contains invalid character"),
        ("Hello\tHallo\x85", "contains invalid character"),
    ],
)
def test_parse_rejects_invalid_content(content, message):
    with pytest.raises(GlossaryValidationError) as exc_info:
        parse_entries(content)

    assert message in str(exc_info.value)
    assert exc_info.value.kind == ErrorKind.glossary_validation


def test_validation_error_is_value_error():
    with pytest.raises(ValueError):
        validate_glossary_term("   ")


def test_skip_checks_accepts_unvalidated_content():
    entries = parse_entries("Hello\tHallo\tSalut\nbad\x07term\tok", skip_checks=True)

    assert entries["Hello"] == "Hallo\tSalut"
    assert entries["bad\x07term"] == "ok"


def test_skip_checks_still_rejects_duplicates():
    with pytest.raises(GlossaryValidationError, match="duplicates source term"):
        parse_entries("Hello\tHallo\nHello\tServus", skip_checks=True)


def test_skip_checks_allows_empty_table():
    entries = parse_entries("", skip_checks=True)

    assert len(entries) == 0
    assert entries.skip_checks
    assert entries.to_tsv() == ""


def test_serialize_empty_table():
    with pytest.raises(GlossaryValidationError, match="contains no entries"):
        serialize_entries(GlossaryEntries([], skip_checks=True))

    assert serialize_entries({}, skip_checks=True) == ""


def test_skip_checks_is_read_only():
    entries = GlossaryEntries([], skip_checks=True)

    with pytest.raises(AttributeError):
        entries.skip_checks = False


def test_build_from_mapping_validates_terms():
    with pytest.raises(GlossaryValidationError):
        GlossaryEntries({"Hello": ""})
    with pytest.raises(GlossaryValidationError):
        GlossaryEntries({})
    for term in ("abc\x1d", "\x1fabc", "abc\x85"):
        with pytest.raises(GlossaryValidationError, match="invalid character"):
            GlossaryEntries({term: "def"})
        with pytest.raises(GlossaryValidationError, match="invalid character"):
            GlossaryEntries({"def": term})

    entries = GlossaryEntries([(" Hello ", " Hallo ")])
    assert entries["Hello"] == "Hallo"


def test_build_from_pairs_rejects_duplicates_after_trimming():
    with pytest.raises(GlossaryValidationError, match="duplicate source term"):
        GlossaryEntries([("Hello", "Hallo"), ("Hello ", "Servus")])


def test_from_csv():
    entries = GlossaryEntries.from_csv("artist,Maler\nprize,Gewinn\n")

    assert entries.to_tsv() == "artist\tMaler\nprize\tGewinn"


def test_from_csv_rejects_extra_columns():
    with pytest.raises(GlossaryValidationError, match="more than one term separator"):
        GlossaryEntries.from_csv("artist,Maler,Künstler")


def test_repr():
    entries = GlossaryEntries({"Hello": "Hallo"})

    assert repr(entries) == "GlossaryEntries[['Hello', 'Hallo']]"
