import pytest
from conftest import AUTH_KEY
from document_translation_client import params
from document_translation_client.document_translation_client import (
    SERVER_URL,
    SERVER_URL_FREE,
    DocumentTranslationClient,
    auth_key_is_free_account,
)
from document_translation_client.exceptions import AuthorizationError, GlossaryNotFoundError
from document_translation_client.glossary import GlossaryEntries
from document_translation_client.models import (
    DocumentTranslateOptions,
    Formality,
    SentenceSplittingMode,
    TextResult,
    TextTranslateOptions,
    TranslatorOptions,
)


@pytest.mark.asyncio
async def test_translate_single_text(server, client):
    result = await client.translate_text("Hello, world!", "en", "DE")

    assert isinstance(result, TextResult)
    assert result.text == "[de] Hello, world!"
    assert result.detected_source_language == "EN"
    assert result.billed_characters == len("Hello, world!")


@pytest.mark.asyncio
async def test_translate_text_list(server, client):
    results = await client.translate_text(["one", "two"], None, "fr")

    assert [result.text for result in results] == ["[fr] one", "[fr] two"]


@pytest.mark.asyncio
async def test_get_usage(server, client):
    await client.translate_text("abcde", "en", "de")

    usage = await client.get_usage()

    assert usage.character.count == 5
    assert usage.character.limit == 500000
    assert usage.document is None
    assert not usage.any_limit_reached


@pytest.mark.asyncio
async def test_get_languages(server, client):
    source_languages = await client.get_source_languages()
    target_languages = await client.get_target_languages()

    assert "DE" in [language.code for language in source_languages]
    assert next(lang for lang in target_languages if lang.code == "FR").supports_formality


@pytest.mark.asyncio
async def test_wrong_auth_key(server, options):
    async with DocumentTranslationClient("wrong-key", options) as client:
        with pytest.raises(AuthorizationError, match="check auth key"):
            await client.get_usage()


@pytest.mark.asyncio
async def test_glossary_lifecycle(server, client):
    server_instance, _ = server
    entries = GlossaryEntries({"artist": "Maler", "prize": "Gewinn"})

    info = await client.create_glossary("My glossary", "EN", "de-DE", entries)
    assert info.name == "My glossary"
    assert info.source_lang == "en"
    assert info.target_lang == "de"
    assert info.entry_count == 2

    assert [glossary.glossary_id for glossary in await client.list_glossaries()] == [info.glossary_id]
    assert (await client.get_glossary(info.glossary_id)).ready
    assert await client.get_glossary_entries(info) == entries

    await client.delete_glossary(info)
    with pytest.raises(GlossaryNotFoundError):
        await client.get_glossary(info)
    assert server_instance.glossaries == {}


@pytest.mark.asyncio
async def test_create_glossary_from_csv(server, client):
    info = await client.create_glossary_from_csv("CSV", "en", "de", "artist,Maler\nprize,Gewinn")

    entries = await client.get_glossary_entries(info.glossary_id)

    assert dict(entries) == {"artist": "Maler", "prize": "Gewinn"}


@pytest.mark.asyncio
async def test_wait_until_glossary_ready(server, client):
    server_instance, _ = server
    server_instance.glossary_ready_after = 2

    info = await client.create_glossary("Pending", "en", "de", GlossaryEntries({"a": "b"}))
    assert not info.ready

    ready = await client.wait_until_glossary_ready(info)

    assert ready.ready
    assert server_instance.count_requests(f"/v2/glossaries/{info.glossary_id}") == 2


@pytest.mark.asyncio
async def test_missing_glossary(server, client):
    with pytest.raises(GlossaryNotFoundError):
        await client.get_glossary_entries("no-such-glossary")


@pytest.mark.asyncio
async def test_glossary_languages(server, client):
    pairs = await client.get_glossary_languages()

    assert ("en", "de") in [(pair.source_lang, pair.target_lang) for pair in pairs]


@pytest.mark.parametrize("auth_key", [None, "", "   "])
def test_rejects_missing_auth_key(auth_key):
    with pytest.raises(ValueError):
        DocumentTranslationClient(auth_key)


def test_server_url_follows_account_type():
    assert auth_key_is_free_account("abc:fx")
    assert not auth_key_is_free_account("abc")
    assert DocumentTranslationClient("abc:fx")._api.server_url == SERVER_URL_FREE
    assert DocumentTranslationClient("abc")._api.server_url == SERVER_URL
    custom = DocumentTranslationClient("abc:fx", TranslatorOptions(server_url="http://localhost:1234/"))
    assert custom._api.server_url == "http://localhost:1234"


def test_request_headers():
    client = DocumentTranslationClient(AUTH_KEY, TranslatorOptions(app_info="my-app/2.0"))
    headers = client._api.headers

    assert headers["Authorization"] == f"DeepL-Auth-Key {AUTH_KEY}"
    assert headers["User-Agent"].startswith("document-translation-client/1.0.0 (")
    assert headers["User-Agent"].endswith(" my-app/2.0")


def test_custom_headers_take_precedence():
    client = DocumentTranslationClient(
        AUTH_KEY,
        TranslatorOptions(headers={"user-agent": "custom"}, send_platform_info=False),
    )

    assert client._api.headers["user-agent"] == "custom"
    assert "User-Agent" not in client._api.headers


def test_text_params():
    options = TextTranslateOptions(
        formality=Formality.prefer_less,
        glossary_id="g1",
        context="greeting",
        sentence_splitting=SentenceSplittingMode.no_newlines,
        preserve_formatting=True,
        tag_handling="xml",
    )

    body = params.build_text_params(["Hi", "there"], "EN", "en-gb", options)

    assert body == [
        ("text", "Hi"),
        ("text", "there"),
        ("target_lang", "en-GB"),
        ("source_lang", "en"),
        ("glossary_id", "g1"),
        ("formality", "prefer_less"),
        ("show_billed_characters", "1"),
        ("context", "greeting"),
        ("split_sentences", "nonewlines"),
        ("preserve_formatting", "1"),
        ("tag_handling", "xml"),
    ]


def test_document_params_defaults():
    assert params.build_document_params(None, "DE") == [("target_lang", "de")]


def test_document_params_with_glossary_need_source_language():
    with pytest.raises(ValueError, match="source_lang is required"):
        params.build_document_params(None, "de", DocumentTranslateOptions(glossary_id="g1"))


@pytest.mark.parametrize("target_lang", ["", "en", "EN", "pt"])
def test_invalid_target_languages(target_lang):
    with pytest.raises(ValueError):
        params.build_common_params(None, target_lang)


def test_empty_text_is_rejected():
    with pytest.raises(ValueError):
        params.build_text_params([], None, "de")


def test_glossary_params():
    entries = GlossaryEntries({"a": "b"})

    assert params.build_glossary_entries_params("Name", "EN-US", "pt-BR", entries) == [
        ("name", "Name"),
        ("source_lang", "en"),
        ("target_lang", "pt"),
        ("entries_format", "tsv"),
        ("entries", "a\tb"),
    ]
    with pytest.raises(ValueError):
        params.build_glossary_entries_params("", "en", "de", entries)
