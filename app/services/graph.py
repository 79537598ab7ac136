from typing import List, Literal, Optional, TypedDict

from langgraph.graph import END, StateGraph

from app.helpers.parsing import extract_document
from app.models.models import ExtractedText
from app.models.schemas import JDParsedInfo, ResumeParsedInfo
from app.services.extraction import extract_job_fields, extract_resume_fields, perform_ocr
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


# LangGraph state and nodes
class IngestState(TypedDict, total=False):
    kind: Literal["resume", "jd"]
    file_name: str
    data: bytes
    extracted: ExtractedText
    resume_info: Optional[ResumeParsedInfo]
    jobs: List[JDParsedInfo]


async def node_extract(state: IngestState):
    extracted = await extract_document(state["file_name"], state["data"], ocr=perform_ocr)
    return {"extracted": extracted}  # DELTA


def route_after_extract(state: IngestState) -> str:
    if state["extracted"].is_empty:
        logger.warning(f"Skipping structured extraction for {state['file_name']}: no text")
        return "empty"
    return state["kind"]


async def node_structure_resume(state: IngestState):
    return {"resume_info": await extract_resume_fields(state["extracted"].text)}


async def node_structure_jobs(state: IngestState):
    jobs = await extract_job_fields(state["extracted"].text)
    logger.info(f"{state['file_name']}: {len(jobs)} job description(s) extracted")
    return {"jobs": jobs}


def build_graph():
    g = StateGraph(IngestState)
    g.add_node("extract", node_extract)
    g.add_node("structure_resume", node_structure_resume)
    g.add_node("structure_jobs", node_structure_jobs)
    g.set_entry_point("extract")
    g.add_conditional_edges(
        "extract",
        route_after_extract,
        {"resume": "structure_resume", "jd": "structure_jobs", "empty": END},
    )
    g.add_edge("structure_resume", END)
    g.add_edge("structure_jobs", END)
    return g.compile()


_graph = None


def get_graph():
    global _graph
    if _graph is None:
        _graph = build_graph()
    return _graph


async def ingest_document(kind: str, file_name: str, data: bytes) -> IngestState:
    """Run one upload through text extraction and structuring"""
    state = await get_graph().ainvoke({"kind": kind, "file_name": file_name, "data": data})
    state.setdefault("resume_info", None)
    state.setdefault("jobs", [])
    return state
