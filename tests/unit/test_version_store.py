"""
Unit tests for core/versioning/version_store.py
"""
import io
from unittest.mock import patch

import pytest
from docx import Document

from core.errors import NotFoundError
from core.models import UPLOAD_KIND


def stored_files(temp_dir):
    return sorted(p for p in (temp_dir / "objects").rglob("*") if p.is_file())


class TestUploadChapter:
    """Test chapter upload and the root version."""

    def test_root_version(self, version_store, repository, chapter):
        chapter_id, root_id = chapter
        root = version_store.get_version(root_id)

        assert root.parent_id is None
        assert root.sequence == 1
        assert root.operation_kind == UPLOAD_KIND
        assert root.file_ext == "md"
        assert root.metadata == {"filename": "intro.md"}
        assert repository.get_chapter(chapter_id)["current_version_id"] == root_id

    def test_chunks_created_with_version(self, version_store, repository, chapter):
        _, root_id = chapter
        root = version_store.get_version(root_id)
        chunks = repository.get_chunks(root_id)

        assert root.chunks_count == len(chunks) > 0
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert all(c.page_from >= 1 and c.page_to >= c.page_from for c in chunks)

    def test_storage_path_convention(self, version_store, document_id, chapter):
        chapter_id, root_id = chapter
        root = version_store.get_version(root_id)
        assert root.storage_path == f"{document_id}/{chapter_id}/{root_id}.md"

    def test_unknown_document(self, version_store):
        with pytest.raises(NotFoundError):
            version_store.upload_chapter("doc_missing", "X", b"text", "x.txt")

    def test_unsupported_format(self, version_store, document_id):
        with pytest.raises(ValueError):
            version_store.upload_chapter(document_id, "X", b"%PDF", "x.pdf")

    def test_chapter_order_increments(self, version_store, repository, document_id):
        first, _ = version_store.upload_chapter(document_id, "One", b"First.", "one.txt")
        second, _ = version_store.upload_chapter(document_id, "Two", b"Second.", "two.txt")

        assert repository.get_chapter(first)["chapter_order"] == 1
        assert repository.get_chapter(second)["chapter_order"] == 2

    def test_docx_upload_keeps_headings(self, version_store, document_id):
        doc = Document()
        doc.add_heading("Scope", level=1)
        doc.add_paragraph("This policy applies to all staff.")
        buffer = io.BytesIO()
        doc.save(buffer)

        _, version_id = version_store.upload_chapter(document_id, "Scope", buffer.getvalue(), "scope.docx")

        assert version_store.load_text(version_id) == "# Scope\n\nThis policy applies to all staff."


class TestCreateVersion:
    """Test lineage and immutability of derived versions."""

    def test_sequence_is_parent_plus_one(self, version_store, chapter):
        chapter_id, root_id = chapter
        child = version_store.create_version(chapter_id, root_id, b"Child text.", "improve")
        grandchild = version_store.create_version(chapter_id, child, b"Grandchild text.", "adapt")

        assert version_store.get_version(child).sequence == 2
        assert version_store.get_version(grandchild).sequence == 3
        assert version_store.get_version(grandchild).parent_id == child

    def test_branching_from_one_parent(self, version_store, chapter):
        chapter_id, root_id = chapter
        a = version_store.create_version(chapter_id, root_id, b"Branch A.", "adjust")
        b = version_store.create_version(chapter_id, root_id, b"Branch B.", "improve")

        assert version_store.get_version(a).parent_id == root_id
        assert version_store.get_version(b).parent_id == root_id
        assert version_store.get_version(a).sequence == version_store.get_version(b).sequence == 2

    def test_parent_content_unchanged(self, version_store, chapter):
        chapter_id, root_id = chapter
        before = version_store.load_content(root_id)
        root_before = version_store.get_version(root_id)

        version_store.create_version(chapter_id, root_id, b"Rewritten.", "adjust")

        assert version_store.load_content(root_id) == before
        assert version_store.get_version(root_id) == root_before

    def test_inherits_parent_format(self, version_store, chapter):
        chapter_id, root_id = chapter
        child = version_store.create_version(chapter_id, root_id, b"Child.", "improve")
        assert version_store.get_version(child).file_ext == "md"

    def test_make_current_false(self, version_store, repository, chapter):
        chapter_id, root_id = chapter
        version_store.create_version(chapter_id, root_id, b"Side branch.", "adapt", make_current=False)
        assert repository.get_chapter(chapter_id)["current_version_id"] == root_id

    def test_parent_from_other_chapter(self, version_store, document_id, chapter):
        chapter_id, _ = chapter
        _, other_root = version_store.upload_chapter(document_id, "Other", b"Other.", "other.txt")

        with pytest.raises(NotFoundError):
            version_store.create_version(chapter_id, other_root, b"x", "improve")

    def test_unknown_chapter(self, version_store):
        with pytest.raises(NotFoundError):
            version_store.create_version("ch_missing", None, b"x", "improve")

    def test_failed_insert_leaves_nothing_behind(self, version_store, repository, chapter, temp_dir):
        chapter_id, root_id = chapter
        files_before = stored_files(temp_dir)
        versions_before = repository.list_versions(chapter_id)

        with patch.object(repository, "insert_version", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError, match="disk full"):
                version_store.create_version(chapter_id, root_id, b"Lost.", "improve")

        assert stored_files(temp_dir) == files_before
        assert repository.list_versions(chapter_id) == versions_before

    def test_lineage(self, version_store, chapter):
        chapter_id, root_id = chapter
        child = version_store.create_version(chapter_id, root_id, b"Child.", "improve")
        grandchild = version_store.create_version(chapter_id, child, b"Grandchild.", "translate")

        assert [v.id for v in version_store.lineage(grandchild)] == [root_id, child, grandchild]

    def test_list_versions(self, version_store, chapter):
        chapter_id, root_id = chapter
        child = version_store.create_version(chapter_id, root_id, b"Child.", "improve")
        assert [v.id for v in version_store.list_versions(chapter_id)] == [root_id, child]
