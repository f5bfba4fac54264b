import asyncio
import io

from translation_server import TranslationServer
from document_translation_client.document_translation_client import DocumentTranslationClient
from document_translation_client.exceptions import DocumentTranslationError
from document_translation_client.models import TranslatorOptions

AUTH_KEY = "example-auth-key"


async def status_changed(status):
    print(f"Document {status.document_id} is now {status.status.value}")
    if status.seconds_remaining is not None:
        print(f"Seconds remaining: {status.seconds_remaining}")


async def main():
    PORT = 8000
    server = TranslationServer(
        auth_key=AUTH_KEY, status_sequence=("queued", "translating", "translating", "done")
    )
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    options = TranslatorOptions(server_url=f"http://localhost:{PORT}", document_poll_interval=1.0)

    async with DocumentTranslationClient(AUTH_KEY, options, on_status_change=status_changed) as client:
        try:
            result = await client.translate_text("Hello, world!", "en", "de")
            print(f"Text translation: {result.text}")

            output = io.BytesIO()
            await client.translate_document(
                b"Quarterly report: revenue went up.", "report.txt", output, "en", "de"
            )
            print(f"Translated document: {output.getvalue().decode()}")

            usage = await client.get_usage()
            print(f"Characters used: {usage.character.count} of {usage.character.limit}")
        except DocumentTranslationError as e:
            print(f"Document translation failed: {e}")
            if e.document_handle is not None:
                print(f"Resume later with document {e.document_handle.document_id}")
        except Exception as e:
            print(f"Error occurred: {e}")

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
