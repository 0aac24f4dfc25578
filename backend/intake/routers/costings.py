from fastapi import APIRouter, Depends, File, Response, UploadFile
from fastapi.concurrency import run_in_threadpool

from intake.dependencies import get_call_context, http_error
from intake.exceptions import IntakeError
from intake.routers.documents import read_upload
from intake.schemas.file_costing import FileCostingData
from intake.schemas.spreadsheet import GenerateWorkbookRequest, ParsedWorkbookResponse
from intake.services.classification_service import classify_structures
from intake.services.costing_extractor import extract_costing_fields
from intake.services.costing_template import costing_filename, generate_costing_workbook
from intake.services.spreadsheet_codec import generate_workbook, parse_workbook

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

router = APIRouter(
    prefix="/costings",
    tags=["costings"],
    dependencies=[Depends(get_call_context)],
)


def _xlsx_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _parse(content: bytes) -> ParsedWorkbookResponse:
    structures, metadata = parse_workbook(content)
    fields = None
    if classify_structures(structures):
        fields = extract_costing_fields(structures).model_dump()
    return ParsedWorkbookResponse(structures=structures, metadata=metadata, fields=fields)


@router.post("/parse", response_model=ParsedWorkbookResponse)
async def parse_costing_sheet(file: UploadFile = File(...)):
    """Parse a workbook; costing sheets also get their fields extracted."""
    content = await read_upload(file)
    try:
        return await run_in_threadpool(_parse, content)
    except (IntakeError, ValueError) as exc:
        raise http_error(exc)


@router.post("/generate")
async def generate_from_structure(req: GenerateWorkbookRequest):
    try:
        content = await run_in_threadpool(generate_workbook, req.structures, req.substitutions)
    except ValueError as exc:
        raise http_error(exc)
    return _xlsx_response(content, req.filename)


@router.post("/template")
async def generate_costing_template(data: FileCostingData):
    """A fresh FILE COSTING sheet filled with the given values."""
    content = await run_in_threadpool(generate_costing_workbook, data)
    return _xlsx_response(content, costing_filename(data.lot_number))
