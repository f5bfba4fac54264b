"""Request parameters for the translation service endpoints."""
from typing import List, Optional, Tuple

from document_translation_client.glossary import GlossaryEntries
from document_translation_client.models import (
    DocumentTranslateOptions,
    Formality,
    SentenceSplittingMode,
    TextTranslateOptions,
)

Params = List[Tuple[str, str]]

_DEPRECATED_TARGET_LANGUAGES = {
    "en": 'target_lang="en" is deprecated, please use "en-GB" or "en-US" instead',
    "pt": 'target_lang="pt" is deprecated, please use "pt-PT" or "pt-BR" instead',
}

_SENTENCE_SPLITTING_VALUES = {
    SentenceSplittingMode.off: "0",
    SentenceSplittingMode.no_newlines: "nonewlines",
}


def standardize_language_code(code: str) -> str:
    """Lower-cases the language and upper-cases the region, e.g. ``en-gb`` -> ``en-GB``"""
    parts = code.split("-", 1)
    if len(parts) == 1:
        return parts[0].lower()
    return f"{parts[0].lower()}-{parts[1].upper()}"


def remove_regional_variant(code: str) -> str:
    return code.split("-", 1)[0].lower()


def check_valid_languages(source_lang: Optional[str], target_lang: str) -> None:
    if source_lang is not None and not source_lang:
        raise ValueError("source_lang must not be empty")
    if not target_lang:
        raise ValueError("target_lang must not be empty")
    if target_lang in _DEPRECATED_TARGET_LANGUAGES:
        raise ValueError(_DEPRECATED_TARGET_LANGUAGES[target_lang])


def build_common_params(
    source_lang: Optional[str],
    target_lang: str,
    formality: Formality = Formality.default,
    glossary_id: Optional[str] = None,
) -> Params:
    target_lang = standardize_language_code(target_lang)
    if source_lang is not None:
        source_lang = standardize_language_code(source_lang)
    check_valid_languages(source_lang, target_lang)

    params = [("target_lang", target_lang)]
    if source_lang is not None:
        params.append(("source_lang", source_lang))

    if glossary_id is not None:
        if source_lang is None:
            raise ValueError("source_lang is required if using a glossary")
        params.append(("glossary_id", glossary_id))

    if formality != Formality.default:
        params.append(("formality", formality.value))
    return params


def build_document_params(
    source_lang: Optional[str],
    target_lang: str,
    options: Optional[DocumentTranslateOptions] = None,
) -> Params:
    options = options or DocumentTranslateOptions()
    return build_common_params(source_lang, target_lang, options.formality, options.glossary_id)


def build_text_params(
    texts: List[str],
    source_lang: Optional[str],
    target_lang: str,
    options: Optional[TextTranslateOptions] = None,
) -> Params:
    if not texts:
        raise ValueError("text must not be empty")

    options = options or TextTranslateOptions()
    params = [("text", text) for text in texts]
    params += build_common_params(source_lang, target_lang, options.formality, options.glossary_id)
    params.append(("show_billed_characters", "1"))

    if options.context is not None:
        params.append(("context", options.context))
    if options.sentence_splitting in _SENTENCE_SPLITTING_VALUES:
        params.append(("split_sentences", _SENTENCE_SPLITTING_VALUES[options.sentence_splitting]))
    if options.preserve_formatting:
        params.append(("preserve_formatting", "1"))
    if options.tag_handling is not None:
        params.append(("tag_handling", options.tag_handling))
    return params


def build_glossary_params(
    name: str,
    source_lang: str,
    target_lang: str,
    entries_format: str,
    entries: str,
) -> Params:
    if not name:
        raise ValueError("Glossary name must not be empty")
    return [
        ("name", name),
        ("source_lang", remove_regional_variant(source_lang)),
        ("target_lang", remove_regional_variant(target_lang)),
        ("entries_format", entries_format),
        ("entries", entries),
    ]


def build_glossary_entries_params(name: str, source_lang: str, target_lang: str, entries: GlossaryEntries) -> Params:
    return build_glossary_params(name, source_lang, target_lang, "tsv", entries.to_tsv())
