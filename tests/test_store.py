import asyncio
import io

import pandas as pd
import pytest
from pymongo.errors import PyMongoError
from unittest.mock import AsyncMock, MagicMock, patch

from app.helpers.parsing import JD_TEMPLATE_COLUMNS, UNTITLED_JD
from app.models.models import ExtractedText
from app.models.schemas import BatchJDResult, ItemStatus, JDParsedInfo, ResumeParsedInfo
from app.services.db import InMemoryCollectionStore, MongoCollectionStore
from app.services.library import DocumentLibrary
from app.utils.exceptions import DatabaseError, DecodeError


def make_xlsx(rows) -> bytes:
    buf = io.BytesIO()
    pd.DataFrame(rows).to_excel(buf, index=False, header=False, engine="openpyxl")
    return buf.getvalue()


def ingest_state(kind="resume", text="resume text", info=None, jobs=None):
    return {
        "kind": kind,
        "file_name": "x",
        "extracted": ExtractedText(file_name="x", text=text),
        "resume_info": info,
        "jobs": jobs or [],
    }


@pytest.fixture
def library():
    return DocumentLibrary(InMemoryCollectionStore("resumes"), InMemoryCollectionStore("job_descriptions"))


class TestInMemoryStore:
    def test_newest_first_and_upsert_keeps_position(self):
        store = InMemoryCollectionStore("resumes")

        async def scenario():
            await store.save({"id": "a", "v": 1})
            await store.save({"id": "b", "v": 1})
            await store.save({"id": "a", "v": 2})
            return await store.fetch_all()

        records = asyncio.run(scenario())
        assert [r["id"] for r in records] == ["b", "a"]
        assert records[1]["v"] == 2

    def test_delete_and_clear(self):
        store = InMemoryCollectionStore("resumes")

        async def scenario():
            for i in "abc":
                await store.save({"id": i})
            deleted = await store.delete_all(["a", "zzz"])
            remaining = await store.fetch_all()
            await store.clear_table()
            return deleted, remaining, await store.fetch_all()

        deleted, remaining, cleared = asyncio.run(scenario())
        assert deleted == 1
        assert {r["id"] for r in remaining} == {"b", "c"}
        assert cleared == []


class TestMongoStore:
    def collection(self):
        coll = MagicMock()
        coll.name = "resumes"
        coll.update_one = AsyncMock()
        coll.delete_many = AsyncMock(return_value=MagicMock(deleted_count=2))
        return coll

    def test_save_upserts_and_stamps_created_at_once(self):
        coll = self.collection()
        asyncio.run(MongoCollectionStore(coll).save({"id": "r1", "file_name": "a.pdf"}))

        flt, update = coll.update_one.call_args.args
        assert flt == {"id": "r1"}
        assert update["$set"]["file_name"] == "a.pdf"
        assert "created_at" in update["$setOnInsert"]
        assert "created_at" not in update["$set"]
        assert coll.update_one.call_args.kwargs["upsert"] is True

    def test_fetch_all_sorted_by_recency(self):
        coll = self.collection()
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.to_list = AsyncMock(return_value=[{"id": "r2", "created_at": 2, "updated_at": 3}])
        coll.find.return_value = cursor

        docs = asyncio.run(MongoCollectionStore(coll).fetch_all())

        assert docs == [{"id": "r2"}]
        cursor.sort.assert_called_once_with("created_at", -1)

    def test_delete_all(self):
        coll = self.collection()
        assert asyncio.run(MongoCollectionStore(coll).delete_all(["a", "b"])) == 2
        coll.delete_many.assert_awaited_once_with({"id": {"$in": ["a", "b"]}})

    def test_driver_errors_wrapped(self):
        coll = self.collection()
        coll.update_one.side_effect = PyMongoError("connection refused")
        with pytest.raises(DatabaseError) as exc:
            asyncio.run(MongoCollectionStore(coll).save({"id": "r1"}))
        assert exc.value.details["collection"] == "resumes"


class TestResumeLifecycle:
    """analyzing -> done | error"""

    @patch("app.services.library.ingest_document", new_callable=AsyncMock)
    def test_done_resume_is_persisted(self, mock_ingest, library):
        mock_ingest.return_value = ingest_state(info=ResumeParsedInfo(name="Li Na", skills=["go"]))
        (placeholder,) = library.add_resume_placeholders([("li.pdf", "application/pdf")])
        assert placeholder.status == ItemStatus.ANALYZING
        assert placeholder.raw_content == ""

        done = asyncio.run(library.process_resume(placeholder.id, "li.pdf", b"%PDF"))

        assert done.status == ItemStatus.DONE
        assert done.raw_content == "resume text"
        assert done.display_name == "Li Na"
        assert library.resumes[placeholder.id].status == ItemStatus.DONE
        stored = asyncio.run(library.resume_store.fetch_all())
        assert [r["id"] for r in stored] == [placeholder.id]
        assert stored[0]["status"] == "done"

    @patch("app.services.library.ingest_document", new_callable=AsyncMock)
    def test_failure_marks_error_and_skips_store(self, mock_ingest, library):
        mock_ingest.side_effect = DecodeError("Could not read PDF cv.pdf", file_name="cv.pdf")
        (placeholder,) = library.add_resume_placeholders([("cv.pdf", "")])

        result = asyncio.run(library.process_resume(placeholder.id, "cv.pdf", b"junk"))

        assert result.status == ItemStatus.ERROR
        assert "Could not read PDF" in result.error
        assert result.error_code == "DECODE_ERROR"
        assert library.resumes[placeholder.id].status == ItemStatus.ERROR
        assert asyncio.run(library.resume_store.fetch_all()) == []

    @patch("app.services.library.ingest_document", new_callable=AsyncMock)
    def test_empty_text_is_an_error(self, mock_ingest, library):
        mock_ingest.return_value = ingest_state(text="  ")
        (placeholder,) = library.add_resume_placeholders([("scan.pdf", "")])
        result = asyncio.run(library.process_resume(placeholder.id, "scan.pdf", b"%PDF"))
        assert result.status == ItemStatus.ERROR
        assert "No text" in result.error
        # told apart from decode or model failures
        assert result.error_code == "EMPTY_DOCUMENT"
        assert result.raw_content == ""

    @patch("app.services.library.ingest_document", new_callable=AsyncMock)
    def test_uploads_processed_independently(self, mock_ingest, library):
        async def ingest(kind, file_name, data):
            if file_name == "bad.txt":
                raise DecodeError("bad", file_name=file_name)
            return ingest_state(info=ResumeParsedInfo(name=file_name))

        mock_ingest.side_effect = ingest
        placeholders = library.add_resume_placeholders([("a.txt", ""), ("bad.txt", ""), ("c.txt", "")])
        items = [(p.id, p.file_name, b"x") for p in placeholders]

        results = asyncio.run(library.process_resumes(items))

        assert [r.status for r in results] == [ItemStatus.DONE, ItemStatus.ERROR, ItemStatus.DONE]

    @patch("app.services.library.ingest_document", new_callable=AsyncMock)
    def test_deleted_while_processing_is_not_saved(self, mock_ingest, library):
        (placeholder,) = library.add_resume_placeholders([("a.txt", "")])

        async def ingest(kind, file_name, data):
            await library.delete_resumes([placeholder.id])
            return ingest_state(info=ResumeParsedInfo(name="A"))

        mock_ingest.side_effect = ingest
        asyncio.run(library.process_resume(placeholder.id, "a.txt", b"x"))

        assert placeholder.id not in library.resumes
        assert asyncio.run(library.resume_store.fetch_all()) == []

    def test_load_restores_both_collections(self, library):
        async def scenario():
            await library.resume_store.save({"id": "r1", "file_name": "a.pdf", "status": "done", "raw_content": "x"})
            await library.resume_store.save({"id": "bad", "status": "not-a-status"})
            await library.jd_store.save({"id": "j1", "title": "Backend", "file_name": "jobs.xlsx"})
            await library.load()

        asyncio.run(scenario())
        assert list(library.resumes) == ["r1"]
        assert list(library.jobs) == ["j1"]


class TestJobImport:
    @patch("app.services.library.extract_job_fields_batch", new_callable=AsyncMock)
    def test_spreadsheet_batch_import(self, mock_batch, library):
        data = make_xlsx([
            JD_TEMPLATE_COLUMNS,
            ["J1", "Backend", "Build APIs", "Python", "Bank background required"],
            ["J2", "Frontend", "Build UI", "React", ""],
            ["J3", "QA", "Test things", "Selenium", ""],
        ])
        mock_batch.return_value = [
            BatchJDResult(row_index=1, job_code="J1", title="Backend engineer", key_clarification="inferred"),
            BatchJDResult(row_index=2, job_code="J2", title="Frontend", key_clarification="inferred only"),
        ]

        result = asyncio.run(library.import_job_file("jobs.xlsx", data))

        sent = mock_batch.await_args.args[0]
        assert [r.row_index for r in sent] == [1, 2, 3]
        assert sent[0].key_clarification == "Bank background required"

        assert [j.id for j in result.imported] == ["J1", "J2"]
        backend = result.imported[0]
        assert backend.title == "Backend"  # from the sheet, not the model
        assert backend.raw_content == "J1\nBackend\nBuild APIs\nPython"
        assert backend.parsed_data.key_clarification == "Bank background required"
        assert result.imported[1].parsed_data.key_clarification == "inferred only"
        assert result.failed_count == 1
        assert result.failed_rows == [3]
        assert set(library.jobs) == {"J1", "J2"}
        assert len(asyncio.run(library.jd_store.fetch_all())) == 2

    @patch("app.services.library.extract_job_fields_batch", new_callable=AsyncMock)
    def test_spreadsheet_without_rows(self, mock_batch, library):
        result = asyncio.run(library.import_job_file("empty.xlsx", make_xlsx([JD_TEMPLATE_COLUMNS])))
        assert result.imported == []
        assert result.message
        mock_batch.assert_not_awaited()

    @patch("app.services.library.ingest_document", new_callable=AsyncMock)
    def test_document_import_upserts_by_job_code(self, mock_ingest, library):
        mock_ingest.return_value = ingest_state(kind="jd", text="jd text", jobs=[
            JDParsedInfo(job_code="J7", title="Data engineer"),
            JDParsedInfo(job_code=" ", title=""),
        ])

        first = asyncio.run(library.import_job_file("jobs.docx", b"docx"))
        asyncio.run(library.import_job_file("jobs.docx", b"docx"))

        assert first.imported[0].id == "J7"
        assert first.imported[1].title == UNTITLED_JD
        assert first.imported[1].id.strip()
        assert first.imported[0].raw_content == "jd text"
        # J7 upserted, the untitled job got a fresh id each time
        assert len(library.jobs) == 3
        mock_ingest.assert_awaited_with("jd", "jobs.docx", b"docx")

    def test_delete_and_clear_jobs(self, library):
        async def scenario():
            await library.jd_store.save({"id": "j1", "title": "A", "file_name": "f"})
            await library.jd_store.save({"id": "j2", "title": "B", "file_name": "f"})
            await library.load()
            await library.delete_jobs(["j1"])
            after_delete = set(library.jobs)
            await library.clear_jobs()
            return after_delete, await library.jd_store.fetch_all()

        after_delete, stored = asyncio.run(scenario())
        assert after_delete == {"j2"}
        assert library.jobs == {}
        assert stored == []
