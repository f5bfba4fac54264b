import asyncio
import io
import zipfile
from pathlib import Path
from typing import AsyncGenerator, Dict, List

import pytest
import pytest_asyncio
from loguru import logger
from translation_server import TranslationServer
from document_translation_client.document_translation_client import DocumentTranslationClient
from document_translation_client.models import RetryPolicy, TranslatorOptions

AUTH_KEY = "test-auth-key"
BASE_URL_TEMPLATE = "http://localhost:{}"


@pytest_asyncio.fixture
async def server(unused_tcp_port_factory) -> AsyncGenerator[TranslationServer, None]:
    """Start and yield a test TranslationServer instance on a random port."""
    port = unused_tcp_port_factory()
    server_instance = TranslationServer(auth_key=AUTH_KEY)
    await server_instance.start(port=port)
    try:
        yield server_instance, port
    finally:
        await _cleanup_server(server_instance)


async def _cleanup_server(server_instance: TranslationServer):
    """Clean up tasks and stop the server."""
    try:
        tasks = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    except Exception as e:
        print(f"Error during cleanup: {e}")
    finally:
        await server_instance.stop()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    """Fast retries so failure scenarios finish quickly."""
    return RetryPolicy(
        per_attempt_timeout=5.0,
        overall_timeout=20.0,
        max_attempts=3,
        backoff_initial=0.01,
        backoff_max=0.05,
    )


@pytest.fixture
def options(server, retry_policy) -> TranslatorOptions:
    _, port = server
    return TranslatorOptions(
        server_url=BASE_URL_TEMPLATE.format(port),
        retry=retry_policy,
        document_poll_interval=0.01,
        glossary_poll_interval=0.01,
    )


@pytest_asyncio.fixture
async def client(options) -> AsyncGenerator[DocumentTranslationClient, None]:
    translation_client = DocumentTranslationClient(AUTH_KEY, options)
    try:
        yield translation_client
    finally:
        await translation_client.close()


@pytest.fixture
def log_messages() -> List[str]:
    """Collect loguru messages of level WARNING and above."""
    messages = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="WARNING")
    yield messages
    logger.remove(handler_id)


def create_office_document(path: Path, files: Dict[str, bytes]) -> Path:
    """Write a ZIP-based document with the given archive members."""
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_STORED) as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return path


def read_archive(source) -> Dict[str, bytes]:
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    with zipfile.ZipFile(source) as archive:
        return {name: archive.read(name) for name in archive.namelist()}
