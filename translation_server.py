import asyncio
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from aiohttp import web
from loguru import logger

LANGUAGES = [
    {"language": "DE", "name": "German", "supports_formality": True},
    {"language": "EN-GB", "name": "English (British)", "supports_formality": False},
    {"language": "EN-US", "name": "English (American)", "supports_formality": False},
    {"language": "FR", "name": "French", "supports_formality": True},
    {"language": "JA", "name": "Japanese", "supports_formality": True},
]


def _parse_entries(entries: str, entries_format: str) -> Dict[str, str]:
    separator = "," if entries_format == "csv" else "\t"
    parsed = {}
    for line in entries.splitlines():
        if separator in line:
            source, target = line.split(separator, 1)
            parsed[source.strip()] = target.strip()
    return parsed


class TranslationServer:
    """In-process stand-in for the translation service.

    Uploaded documents are "translated" by echoing their bytes back, and every
    status poll advances a document through ``status_sequence``. Requests can
    be delayed with ``response_delay`` or answered with scripted failures via
    ``fail_next``.
    """

    def __init__(
        self,
        auth_key: str = "test-auth-key",
        status_sequence: Sequence[str] = ("queued", "translating", "done"),
        error_message: Optional[str] = None,
    ):
        self.auth_key = auth_key
        self.status_sequence = list(status_sequence)
        self.error_message = error_message
        self.response_delay = 0.0
        self.glossary_ready_after = 0
        self.scripted_failures: List[int] = []
        self.requests: List[str] = []
        self.documents: Dict[str, dict] = {}
        self.glossaries: Dict[str, dict] = {}
        self.character_count = 0
        self.runner: Optional[web.AppRunner] = None
        self.app = web.Application(
            client_max_size=128 * 1024 * 1024, middlewares=[self.handle_common]
        )
        self.app.router.add_get("/v2/usage", self.handle_usage)
        self.app.router.add_get("/v2/languages", self.handle_languages)
        self.app.router.add_post("/v2/translate", self.handle_translate)
        self.app.router.add_post("/v2/document", self.handle_document_upload)
        self.app.router.add_post("/v2/document/{document_id}", self.handle_document_status)
        self.app.router.add_post("/v2/document/{document_id}/result", self.handle_document_result)
        self.app.router.add_get("/v2/glossary-language-pairs", self.handle_glossary_languages)
        self.app.router.add_post("/v2/glossaries", self.handle_glossary_create)
        self.app.router.add_get("/v2/glossaries", self.handle_glossary_list)
        self.app.router.add_get("/v2/glossaries/{glossary_id}", self.handle_glossary_get)
        self.app.router.add_get("/v2/glossaries/{glossary_id}/entries", self.handle_glossary_entries)
        self.app.router.add_delete("/v2/glossaries/{glossary_id}", self.handle_glossary_delete)
        self.logger = logger

    def fail_next(self, *statuses: int) -> None:
        """Answer the next requests with these HTTP statuses, one each"""
        self.scripted_failures.extend(statuses)

    def count_requests(self, path_prefix: str = "") -> int:
        return sum(1 for entry in self.requests if entry.split(" ", 1)[1].startswith(path_prefix))

    @web.middleware
    async def handle_common(self, request, handler):
        self.requests.append(f"{request.method} {request.path}")
        if self.response_delay:
            await asyncio.sleep(self.response_delay)

        if self.scripted_failures:
            status = self.scripted_failures.pop(0)
            self.logger.info(f"Returning scripted status {status} for {request.path}")
            return web.json_response({"message": f"Scripted failure {status}"}, status=status)

        if request.headers.get("Authorization") != f"DeepL-Auth-Key {self.auth_key}":
            return web.json_response({"message": "Invalid auth key"}, status=403)
        return await handler(request)

    async def handle_usage(self, request):
        return web.json_response({"character_count": self.character_count, "character_limit": 500000})

    async def handle_languages(self, request):
        return web.json_response(LANGUAGES)

    async def handle_translate(self, request):
        data = await request.post()
        target_lang = data.get("target_lang")
        if not target_lang:
            return web.json_response({"message": "Value for 'target_lang' not supported."}, status=400)

        translations = []
        for text in data.getall("text", []):
            self.character_count += len(text)
            translations.append(
                {
                    "detected_source_language": data.get("source_lang", "EN").upper(),
                    "text": f"[{target_lang}] {text}",
                    "billed_characters": len(text),
                }
            )
        return web.json_response({"translations": translations})

    async def handle_document_upload(self, request):
        data = await request.post()
        target_lang = data.get("target_lang")
        upload = data.get("file")
        if not target_lang or upload is None or isinstance(upload, str):
            return web.json_response({"message": "Missing target_lang or file"}, status=400)

        document_id = uuid.uuid4().hex.upper()
        content = upload.file.read()
        self.documents[document_id] = {
            "key": uuid.uuid4().hex.upper(),
            "filename": upload.filename,
            "content": content,
            "statuses": list(self.status_sequence),
            "current": None,
        }
        self.logger.info(f"Received document {upload.filename} ({len(content)} bytes) as {document_id}")
        return web.json_response(
            {"document_id": document_id, "document_key": self.documents[document_id]["key"]}
        )

    async def _get_document(self, request):
        data = await request.post()
        document = self.documents.get(request.match_info["document_id"])
        if document is None:
            raise web.HTTPNotFound(
                text='{"message": "Document not found"}', content_type="application/json"
            )
        if data.get("document_key") != document["key"]:
            raise web.HTTPForbidden(
                text='{"message": "Invalid document key"}', content_type="application/json"
            )
        return document

    async def handle_document_status(self, request):
        document = await self._get_document(request)
        statuses = document["statuses"]
        status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
        document["current"] = status
        self.logger.info(f"Returning {status} status for {request.match_info['document_id']}")

        response = {"document_id": request.match_info["document_id"], "status": status}
        if status in ("queued", "translating"):
            response["seconds_remaining"] = 1
        elif status == "done":
            response["billed_characters"] = len(document["content"])
        elif self.error_message is not None:
            response["error_message"] = self.error_message
        return web.json_response(response)

    async def handle_document_result(self, request):
        document = await self._get_document(request)
        if document["current"] != "done":
            return web.json_response({"message": "Document not ready"}, status=503)
        return web.Response(body=document["content"], content_type="application/octet-stream")

    async def handle_glossary_languages(self, request):
        pairs = [
            {"source_lang": source, "target_lang": target}
            for source in ("de", "en", "fr")
            for target in ("de", "en", "fr")
            if source != target
        ]
        return web.json_response({"supported_languages": pairs})

    def _glossary_info(self, glossary_id: str) -> dict:
        glossary = self.glossaries[glossary_id]
        info = {key: value for key, value in glossary.items() if key not in ("entries", "polls")}
        info["glossary_id"] = glossary_id
        info["entry_count"] = len(glossary["entries"])
        info["ready"] = glossary["polls"] >= self.glossary_ready_after
        return info

    def _find_glossary(self, request) -> str:
        glossary_id = request.match_info["glossary_id"]
        if glossary_id not in self.glossaries:
            raise web.HTTPNotFound(
                text='{"message": "Glossary not found"}', content_type="application/json"
            )
        return glossary_id

    async def handle_glossary_create(self, request):
        data = await request.post()
        entries = _parse_entries(data.get("entries", ""), data.get("entries_format", "tsv"))
        if not data.get("name") or not entries:
            return web.json_response({"message": "Invalid glossary"}, status=400)

        glossary_id = str(uuid.uuid4())
        self.glossaries[glossary_id] = {
            "name": data["name"],
            "source_lang": data["source_lang"],
            "target_lang": data["target_lang"],
            "creation_time": datetime.now(timezone.utc).isoformat(),
            "entries": entries,
            "polls": 0,
        }
        return web.json_response(self._glossary_info(glossary_id), status=201)

    async def handle_glossary_list(self, request):
        return web.json_response({"glossaries": [self._glossary_info(gid) for gid in self.glossaries]})

    async def handle_glossary_get(self, request):
        glossary_id = self._find_glossary(request)
        self.glossaries[glossary_id]["polls"] += 1
        return web.json_response(self._glossary_info(glossary_id))

    async def handle_glossary_entries(self, request):
        glossary_id = self._find_glossary(request)
        entries = self.glossaries[glossary_id]["entries"]
        body = "\n".join(f"{source}\t{target}" for source, target in entries.items())
        return web.Response(text=body, content_type="text/tab-separated-values")

    async def handle_glossary_delete(self, request):
        glossary_id = self._find_glossary(request)
        del self.glossaries[glossary_id]
        return web.Response(status=204)

    async def start(self, port: int = 8080):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self):
        await self.runner.cleanup()
        self.logger.info("Server stopped")
