"""
Document library: the Resume and JobDescription collections, their
upload pipelines and persistence
"""
import asyncio
from functools import lru_cache
from typing import Dict, List, Tuple

from pydantic import ValidationError as SchemaError

from app.helpers.parsing import UNTITLED_JD, file_extension, read_jd_rows
from app.models.response import JDImportResult
from app.models.schemas import BatchJDInput, ItemStatus, JDParsedInfo, JobDescription, Resume
from app.services.db import CollectionStore, get_stores
from app.services.extraction import extract_job_fields_batch
from app.services.graph import ingest_document
from app.utils.exceptions import EmptyDocument, ExceptionContext, ProcessingError, ResumeMatchError
from app.utils.logging_config import get_logger
from app.utils.utils import new_id

logger = get_logger(__name__)

SPREADSHEET_EXTENSIONS = {".xlsx", ".xls"}


class DocumentLibrary:
    """Owns resume status transitions: analyzing -> done | error"""

    def __init__(self, resume_store: CollectionStore, jd_store: CollectionStore):
        self.resume_store = resume_store
        self.jd_store = jd_store
        self.resumes: Dict[str, Resume] = {}
        self.jobs: Dict[str, JobDescription] = {}

    def list_resumes(self) -> List[Resume]:
        return list(self.resumes.values())

    def list_jobs(self) -> List[JobDescription]:
        return list(self.jobs.values())

    async def load(self):
        """Populate both collections from the stores, newest first"""
        with ExceptionContext("load library", logger):
            resume_docs = await self.resume_store.fetch_all()
            jd_docs = await self.jd_store.fetch_all()

        for doc in resume_docs:
            try:
                resume = Resume(**doc)
            except SchemaError as e:
                logger.warning(f"Skipping unreadable stored resume {doc.get('id')}: {e}")
                continue
            self.resumes[resume.id] = resume
        for doc in jd_docs:
            try:
                jd = JobDescription(**doc)
            except SchemaError as e:
                logger.warning(f"Skipping unreadable stored job description {doc.get('id')}: {e}")
                continue
            self.jobs[jd.id] = jd
        logger.info(f"Library loaded: {len(self.resumes)} resume(s), {len(self.jobs)} job description(s)")

    # -------- Resumes --------
    def add_resume_placeholders(self, files: List[Tuple[str, str]]) -> List[Resume]:
        """One analyzing record per (file_name, content_type)"""
        placeholders = []
        for file_name, content_type in files:
            resume = Resume(id=new_id(), file_name=file_name, file_type=content_type or "")
            self.resumes[resume.id] = resume
            placeholders.append(resume)
        return placeholders

    def _fail_resume(self, resume: Resume, message: str, code: str = "UNEXPECTED_ERROR") -> Resume:
        failed = resume.model_copy(update={"status": ItemStatus.ERROR, "error": message, "error_code": code})
        if resume.id in self.resumes:
            self.resumes[resume.id] = failed
        return failed

    async def process_resume(self, resume_id: str, file_name: str, data: bytes) -> Resume:
        resume = self.resumes.get(resume_id)
        if resume is None or resume.status != ItemStatus.ANALYZING:
            raise ProcessingError(f"Resume {resume_id} is not awaiting processing",
                                  document_id=resume_id, document_type="resume")

        try:
            state = await ingest_document("resume", file_name, data)
            extracted = state["extracted"]
            if extracted.is_empty:
                raise EmptyDocument(f"No text could be extracted from {file_name}",
                                    document_id=resume_id, document_type="resume")
            done = resume.model_copy(update={
                "raw_content": extracted.text,
                "parsed_data": state["resume_info"],
                "status": ItemStatus.DONE,
                "error": None,
            })
            if resume_id not in self.resumes:
                logger.info(f"Resume {resume_id} was deleted while processing, discarding result")
                return done
            with ExceptionContext("save resume", logger, resume_id=resume_id):
                await self.resume_store.save(done.model_dump(mode="json"))
        except ResumeMatchError as e:
            logger.error(f"Error parsing resume {file_name}: {e.message}")
            return self._fail_resume(resume, e.message, e.error_code)
        except Exception as e:
            logger.exception(f"Unexpected error parsing resume {file_name}")
            return self._fail_resume(resume, f"Unexpected error: {e}")

        if resume_id in self.resumes:
            self.resumes[resume_id] = done
        logger.info(f"Resume {file_name} parsed as {done.display_name}")
        return done

    async def process_resumes(self, items: List[Tuple[str, str, bytes]]) -> List[Resume]:
        """Process (resume_id, file_name, data) uploads concurrently"""
        return list(await asyncio.gather(*(self.process_resume(*item) for item in items)))

    async def delete_resumes(self, ids: List[str]) -> int:
        for i in ids:
            self.resumes.pop(i, None)
        with ExceptionContext("delete resumes", logger, count=len(ids)):
            return await self.resume_store.delete_all(ids)

    async def clear_resumes(self):
        self.resumes.clear()
        with ExceptionContext("clear resumes", logger):
            await self.resume_store.clear_table()

    # -------- Job descriptions --------
    async def _upsert_jobs(self, jobs: List[JobDescription]):
        for jd in jobs:
            self.jobs[jd.id] = jd
            with ExceptionContext("save job description", logger, jd_id=jd.id):
                await self.jd_store.save(jd.model_dump(mode="json"))

    async def _import_job_sheet(self, file_name: str, data: bytes) -> JDImportResult:
        loop = asyncio.get_running_loop()
        rows = await loop.run_in_executor(None, read_jd_rows, data, file_name)
        if not rows:
            return JDImportResult(file_name=file_name, message="No valid job rows found in the spreadsheet")

        logger.info(f"[JD Import] Batch parsing {len(rows)} rows from {file_name}")
        parsed = await extract_job_fields_batch([BatchJDInput(**row.model_dump()) for row in rows])
        meta = {row.row_index: row for row in rows}

        jobs = []
        for item in parsed:
            row = meta.get(item.row_index)
            if row is None:
                continue
            info = JDParsedInfo(**item.model_dump(exclude={"row_index"}))
            # the spreadsheet's own clarification wins over the inferred one
            info.key_clarification = row.key_clarification or item.key_clarification
            jobs.append(JobDescription(
                id=row.job_code,
                title=row.title,
                file_name=file_name,
                raw_content=row.raw_content,
                parsed_data=info,
            ))

        returned = {item.row_index for item in parsed}
        failed_rows = [row.row_index for row in rows if row.row_index not in returned]
        await self._upsert_jobs(jobs)

        message = None
        if failed_rows:
            message = f"Import finished: {len(jobs)} succeeded, {len(failed_rows)} failed"
            logger.warning(f"[JD Import] {file_name}: rows {failed_rows} were not returned by the model")
        return JDImportResult(
            file_name=file_name, imported=jobs, failed_count=len(failed_rows), failed_rows=failed_rows, message=message
        )

    async def import_job_file(self, file_name: str, data: bytes) -> JDImportResult:
        if file_extension(file_name) in SPREADSHEET_EXTENSIONS:
            return await self._import_job_sheet(file_name, data)

        state = await ingest_document("jd", file_name, data)
        text = state["extracted"].text
        jobs = [
            JobDescription(
                id=parsed.job_code.strip() or new_id(),
                title=parsed.title or UNTITLED_JD,
                file_name=file_name,
                raw_content=text,
                parsed_data=parsed,
            )
            for parsed in state["jobs"]
        ]
        await self._upsert_jobs(jobs)
        return JDImportResult(
            file_name=file_name,
            imported=jobs,
            message=None if jobs else "No job descriptions found in the document",
        )

    async def delete_jobs(self, ids: List[str]) -> int:
        for i in ids:
            self.jobs.pop(i, None)
        with ExceptionContext("delete job descriptions", logger, count=len(ids)):
            return await self.jd_store.delete_all(ids)

    async def clear_jobs(self):
        self.jobs.clear()
        with ExceptionContext("clear job descriptions", logger):
            await self.jd_store.clear_table()


@lru_cache()
def get_library() -> DocumentLibrary:
    resume_store, jd_store = get_stores()
    return DocumentLibrary(resume_store, jd_store)
