from fastapi import Request, UploadFile

from backend.core.pipeline import TrackerService
from backend.reporting.tabular import read_rows


def get_service(request: Request) -> TrackerService:
    return request.app.state.service


async def upload_rows(file: UploadFile):
    content = await file.read()
    return read_rows(content, file.filename)
