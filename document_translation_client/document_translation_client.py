import asyncio
import contextlib
import platform
import shutil
from pathlib import Path
from typing import Any, BinaryIO, Callable, List, Optional, Union

from loguru import logger

from document_translation_client import cancellation, params
from document_translation_client.exceptions import DocumentFailedError, DocumentTranslationError
from document_translation_client.glossary import GlossaryEntries
from document_translation_client.http_client import ApiClient, UploadFile
from document_translation_client.minifier import DocumentMinifier
from document_translation_client.models import (
    DocumentHandle,
    DocumentStatus,
    DocumentStatusCode,
    DocumentTranslateOptions,
    GlossaryInfo,
    GlossaryLanguagePair,
    Language,
    TextResult,
    TextTranslateOptions,
    TranslatorOptions,
    Usage,
)

VERSION = "1.0.0"
SERVER_URL = "https://api.deepl.com"
SERVER_URL_FREE = "https://api-free.deepl.com"

PathLike = Union[str, Path]
Glossary = Union[str, GlossaryInfo]


def auth_key_is_free_account(auth_key: str) -> bool:
    return auth_key.rstrip().endswith(":fx")


def _delete_quietly(path: Path) -> None:
    with contextlib.suppress(OSError):
        path.unlink(missing_ok=True)


def _glossary_id(glossary: Glossary) -> str:
    return glossary.glossary_id if isinstance(glossary, GlossaryInfo) else glossary


class DocumentTranslationClient:
    """Client for the translation service.

    Besides text translation and glossary management, it runs document
    translations either end to end (``translate_document`` /
    ``translate_document_file``) or step by step (``upload_document``,
    ``get_document_status``, ``wait_until_document_done``,
    ``download_document``) for callers that keep the ``DocumentHandle``
    across restarts.

    Every network call accepts ``cancel``, an ``asyncio.Event`` that aborts
    the call with ``OperationCancelledError`` once set.
    """

    def __init__(
        self,
        auth_key: str,
        options: Optional[TranslatorOptions] = None,
        on_status_change: Optional[Callable[[DocumentStatus], Any]] = None,
    ):
        if auth_key is None:
            raise ValueError("auth_key must not be None")
        auth_key = auth_key.strip()
        if not auth_key:
            raise ValueError("auth_key is empty")

        self.options = options or TranslatorOptions()
        self.logger = logger
        self.on_status_change = on_status_change

        server_url = self.options.server_url or (
            SERVER_URL_FREE if auth_key_is_free_account(auth_key) else SERVER_URL
        )
        headers = dict(self.options.headers)
        header_names = {name.lower() for name in headers}
        if "user-agent" not in header_names:
            headers["User-Agent"] = self._user_agent()
        if "authorization" not in header_names:
            headers["Authorization"] = f"DeepL-Auth-Key {auth_key}"

        self._api = ApiClient(server_url, headers, self.options.retry)

    def _user_agent(self) -> str:
        user_agent = f"document-translation-client/{VERSION}"
        if self.options.send_platform_info:
            user_agent += f" ({platform.platform()}) python/{platform.python_version()}"
        if self.options.app_info:
            user_agent += f" {self.options.app_info}"
        return user_agent

    async def close(self) -> None:
        await self._api.close()

    async def __aenter__(self) -> "DocumentTranslationClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def get_usage(self, cancel: Optional[asyncio.Event] = None) -> Usage:
        with await self._api.request("GET", "/v2/usage", cancel=cancel) as response:
            return Usage.from_response(response.json())

    async def translate_text(
        self,
        text: Union[str, List[str]],
        source_lang: Optional[str],
        target_lang: str,
        options: Optional[TextTranslateOptions] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> Union[TextResult, List[TextResult]]:
        """Translates one text or a list of texts; the result mirrors the input shape"""
        texts = [text] if isinstance(text, str) else list(text)
        body = params.build_text_params(texts, source_lang, target_lang, options)
        with await self._api.request("POST", "/v2/translate", data=body, cancel=cancel) as response:
            results = [TextResult.model_validate(item) for item in response.json()["translations"]]
        return results[0] if isinstance(text, str) else results

    async def _get_languages(self, language_type: str, cancel: Optional[asyncio.Event]) -> List[Language]:
        with await self._api.request(
            "GET", "/v2/languages", params=[("type", language_type)], cancel=cancel
        ) as response:
            return [Language.model_validate(item) for item in response.json()]

    async def get_source_languages(self, cancel: Optional[asyncio.Event] = None) -> List[Language]:
        return await self._get_languages("source", cancel)

    async def get_target_languages(self, cancel: Optional[asyncio.Event] = None) -> List[Language]:
        return await self._get_languages("target", cancel)

    async def upload_document(
        self,
        file: Union[bytes, BinaryIO],
        filename: str,
        source_lang: Optional[str],
        target_lang: str,
        options: Optional[DocumentTranslateOptions] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> DocumentHandle:
        """Uploads a document for translation and returns its handle"""
        body = params.build_document_params(source_lang, target_lang, options)
        with await self._api.request(
            "POST", "/v2/document", data=body, upload=UploadFile(file, filename), cancel=cancel
        ) as response:
            handle = DocumentHandle.model_validate(response.json())
        self.logger.info(f"Uploaded {filename} as document {handle.document_id}")
        return handle

    async def upload_document_file(
        self,
        input_path: PathLike,
        source_lang: Optional[str],
        target_lang: str,
        options: Optional[DocumentTranslateOptions] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> DocumentHandle:
        input_path = Path(input_path)
        with input_path.open("rb") as input_file:
            return await self.upload_document(
                input_file, input_path.name, source_lang, target_lang, options, cancel
            )

    async def get_document_status(
        self, handle: DocumentHandle, cancel: Optional[asyncio.Event] = None
    ) -> DocumentStatus:
        with await self._api.request(
            "POST",
            f"/v2/document/{handle.document_id}",
            data=[("document_key", handle.document_key)],
            cancel=cancel,
        ) as response:
            return DocumentStatus.model_validate(response.json())

    async def _handle_status_change(
        self, status: DocumentStatus, last_status: Optional[DocumentStatusCode]
    ) -> None:
        """Invoke the status change callback if the status has changed"""
        if last_status != status.status:
            self.logger.debug(f"Document {status.document_id} status changed to {status.status.value}")
            if self.on_status_change is not None:
                await self.on_status_change(status)

    async def _wait_before_next_poll(self, status: DocumentStatus, cancel: Optional[asyncio.Event]) -> None:
        # seconds_remaining is unreliable, so poll at a fixed interval
        delay = self.options.document_poll_interval
        self.logger.debug(
            f"Document {status.document_id} is {status.status.value} "
            f"(hint: {status.seconds_remaining}s remaining), waiting {delay:.2f}s before next poll"
        )
        await cancellation.sleep(delay, cancel)

    async def wait_until_document_done(
        self, handle: DocumentHandle, cancel: Optional[asyncio.Event] = None
    ) -> DocumentStatus:
        """Polls the document status until translation is done.

        Raises DocumentFailedError if the service reports an error.
        """
        status = await self.get_document_status(handle, cancel)
        await self._handle_status_change(status, None)

        while status.ok and not status.done:
            await self._wait_before_next_poll(status, cancel)
            last_status = status.status
            status = await self.get_document_status(handle, cancel)
            await self._handle_status_change(status, last_status)

        if not status.ok:
            raise DocumentFailedError(status.error_message or "Unknown error", status=status)
        return status

    async def download_document(
        self,
        handle: DocumentHandle,
        output: BinaryIO,
        cancel: Optional[asyncio.Event] = None,
    ) -> None:
        """Writes the translated document to ``output``.

        Raises DocumentNotReadyError if the translation is not done yet.
        """
        with await self._api.request(
            "POST",
            f"/v2/document/{handle.document_id}/result",
            data=[("document_key", handle.document_key)],
            downloading=True,
            cancel=cancel,
        ) as response:
            response.copy_to(output)
        self.logger.info(f"Downloaded translated document {handle.document_id}")

    async def download_document_to_file(
        self,
        handle: DocumentHandle,
        output_path: PathLike,
        cancel: Optional[asyncio.Event] = None,
    ) -> None:
        """Downloads into a new file, which is removed again if the download fails"""
        output_path = Path(output_path)
        output = output_path.open("xb")
        try:
            with output:
                await self.download_document(handle, output, cancel)
        except BaseException:
            _delete_quietly(output_path)
            raise

    async def translate_document(
        self,
        input_file: Union[bytes, BinaryIO],
        input_filename: str,
        output: BinaryIO,
        source_lang: Optional[str],
        target_lang: str,
        options: Optional[DocumentTranslateOptions] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> None:
        """Uploads, waits for and downloads one document translation.

        Any failure is raised as DocumentTranslationError; its
        ``document_handle`` is set if the upload had succeeded.
        """
        handle = None
        try:
            handle = await self.upload_document(
                input_file, input_filename, source_lang, target_lang, options, cancel
            )
            await self.wait_until_document_done(handle, cancel)
            await self.download_document(handle, output, cancel)
        except Exception as e:
            self.logger.error(f"Document translation of {input_filename} failed: {e}")
            raise DocumentTranslationError(
                f"Error occurred during document translation: {e}", e, handle
            ) from e

    async def translate_document_file(
        self,
        input_path: PathLike,
        output_path: PathLike,
        source_lang: Optional[str],
        target_lang: str,
        options: Optional[DocumentTranslateOptions] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> None:
        """Translates the file at ``input_path`` into the new file ``output_path``.

        With ``enable_document_minification`` set, supported office documents
        are uploaded without their media, which is put back into the output
        afterwards. If anything fails, the output file and the minification
        working directory are deleted.
        """
        input_path = Path(input_path)
        output_path = Path(output_path)
        options = options or DocumentTranslateOptions()
        loop = asyncio.get_event_loop()

        output = output_path.open("xb")
        minifier = None
        try:
            with output:
                upload_path = input_path
                if options.enable_document_minification and DocumentMinifier.can_minify_file(input_path):
                    minifier = DocumentMinifier()
                    upload_path = await loop.run_in_executor(
                        None, minifier.minify_document, input_path, True
                    )
                with upload_path.open("rb") as input_file:
                    await self.translate_document(
                        input_file, input_path.name, output, source_lang, target_lang, options, cancel
                    )
            if minifier is not None:
                await loop.run_in_executor(
                    None, minifier.deminify_document, output_path, output_path, True
                )
        except BaseException:
            _delete_quietly(output_path)
            if minifier is not None:
                shutil.rmtree(minifier.work_dir, ignore_errors=True)
            raise

    async def get_glossary_languages(
        self, cancel: Optional[asyncio.Event] = None
    ) -> List[GlossaryLanguagePair]:
        with await self._api.request("GET", "/v2/glossary-language-pairs", cancel=cancel) as response:
            pairs = response.json()["supported_languages"]
        return [GlossaryLanguagePair.model_validate(pair) for pair in pairs]

    async def create_glossary(
        self,
        name: str,
        source_lang: str,
        target_lang: str,
        entries: GlossaryEntries,
        cancel: Optional[asyncio.Event] = None,
    ) -> GlossaryInfo:
        body = params.build_glossary_entries_params(name, source_lang, target_lang, entries)
        with await self._api.request(
            "POST", "/v2/glossaries", data=body, glossary=True, cancel=cancel
        ) as response:
            info = GlossaryInfo.model_validate(response.json())
        self.logger.info(f"Created glossary {info.name!r} ({info.glossary_id}) with {len(entries)} entries")
        return info

    async def create_glossary_from_csv(
        self,
        name: str,
        source_lang: str,
        target_lang: str,
        csv_content: str,
        cancel: Optional[asyncio.Event] = None,
    ) -> GlossaryInfo:
        entries = GlossaryEntries.from_csv(csv_content)
        return await self.create_glossary(name, source_lang, target_lang, entries, cancel)

    async def get_glossary(
        self, glossary: Glossary, cancel: Optional[asyncio.Event] = None
    ) -> GlossaryInfo:
        with await self._api.request(
            "GET", f"/v2/glossaries/{_glossary_id(glossary)}", glossary=True, cancel=cancel
        ) as response:
            return GlossaryInfo.model_validate(response.json())

    async def wait_until_glossary_ready(
        self, glossary: Glossary, cancel: Optional[asyncio.Event] = None
    ) -> GlossaryInfo:
        info = await self.get_glossary(glossary, cancel)
        while not info.ready:
            await cancellation.sleep(self.options.glossary_poll_interval, cancel)
            info = await self.get_glossary(glossary, cancel)
        return info

    async def list_glossaries(self, cancel: Optional[asyncio.Event] = None) -> List[GlossaryInfo]:
        with await self._api.request("GET", "/v2/glossaries", glossary=True, cancel=cancel) as response:
            glossaries = response.json()["glossaries"]
        return [GlossaryInfo.model_validate(item) for item in glossaries]

    async def get_glossary_entries(
        self, glossary: Glossary, cancel: Optional[asyncio.Event] = None
    ) -> GlossaryEntries:
        with await self._api.request(
            "GET",
            f"/v2/glossaries/{_glossary_id(glossary)}/entries",
            accept="text/tab-separated-values",
            glossary=True,
            cancel=cancel,
        ) as response:
            content = response.text()
        return GlossaryEntries.from_tsv(content, skip_checks=True)

    async def delete_glossary(self, glossary: Glossary, cancel: Optional[asyncio.Event] = None) -> None:
        with await self._api.request(
            "DELETE", f"/v2/glossaries/{_glossary_id(glossary)}", glossary=True, cancel=cancel
        ):
            pass
        self.logger.info(f"Deleted glossary {_glossary_id(glossary)}")
