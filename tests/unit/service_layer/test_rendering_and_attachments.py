"""
Unit Tests for Markdown Rendering and Image Attachment Resolution
"""

import pytest

from nanochat.core.models import ImageAttachment
from nanochat.services.attachments import resolve_image_url, to_data_url
from nanochat.services.rendering import render_markdown
from test_fixtures import USER_ID


@pytest.mark.unit
class TestRenderMarkdown:
    def test_paragraph(self):
        assert render_markdown("Hello **world**") == "<p>Hello <strong>world</strong></p>\n"

    def test_raw_html_is_escaped(self):
        html = render_markdown("<script>alert(1)</script>")

        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_tables_are_enabled(self):
        assert "<table>" in render_markdown("| a | b |\n|---|---|\n| 1 | 2 |")

    def test_empty(self):
        assert render_markdown("") == ""


@pytest.mark.unit
class TestResolveImageUrl:
    @pytest.mark.asyncio
    async def test_remote_url_passthrough(self, file_storage):
        image = ImageAttachment(url="https://img.example.com/a.png", storage_id="ignored")

        assert await resolve_image_url(image, file_storage) == "https://img.example.com/a.png"

    @pytest.mark.asyncio
    async def test_stored_image_is_inlined(self, file_storage):
        stored = await file_storage.save(USER_ID, b"abc", "image/png", "a.png")
        image = ImageAttachment(url=f"/api/storage/{stored.id}", storage_id=stored.id)

        assert await resolve_image_url(image, file_storage) == "data:image/png;base64,YWJj"

    @pytest.mark.asyncio
    async def test_unknown_storage_id_falls_back(self, file_storage):
        image = ImageAttachment(url="/api/storage/missing", storage_id="missing")

        assert await resolve_image_url(image, file_storage) == "/api/storage/missing"

    @pytest.mark.asyncio
    async def test_no_storage_configured(self):
        image = ImageAttachment(url="/api/storage/x", storage_id="x")

        assert await resolve_image_url(image, None) == "/api/storage/x"

    def test_to_data_url(self):
        assert to_data_url(b"\x00", "image/gif") == "data:image/gif;base64,AA=="
