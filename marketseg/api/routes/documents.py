from __future__ import annotations

from fastapi import APIRouter, File, HTTPException, UploadFile

from marketseg.errors import ConfigError
from marketseg.models.schemas import ExtractDocumentResponse
from marketseg.services.document_prefill import DocumentError, extract_product_input

router = APIRouter(prefix="/api", tags=["documents"])


@router.post("/extract-document", response_model=ExtractDocumentResponse, response_model_by_alias=True)
async def extract_document(file: UploadFile | None = File(default=None)):
    """Best-effort ProductInput fields read from an uploaded text or PDF file."""
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")

    content = await file.read()
    try:
        extracted = await extract_product_input(content, file.filename, file.content_type)
    except ConfigError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    except DocumentError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return ExtractDocumentResponse(extracted_data=extracted)
