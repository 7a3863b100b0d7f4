"""File parsing utilities that turn raw uploads into import documents.

Only JSON is supported. The parser decodes the payload into a
`QuizImportDocument`; it does not judge whether the quiz is importable,
that is the validator's job.
"""

import json
from typing import Union

from pydantic import ValidationError as SchemaError

from ..schemas import QuizImportDocument

SUPPORTED_EXT = {'.json'}


class ImportDocumentError(ValueError):
    """Raised when a payload cannot be decoded into a quiz document."""


def parse_import_file(file_bytes: bytes, filename: str) -> QuizImportDocument:
    """Dispatch to the appropriate parser based on file extension."""
    name = (filename or '').lower()
    if name.endswith('.json'):
        return parse_json(file_bytes)
    raise ImportDocumentError(f"Unsupported file type: {filename}")


def parse_json(content: Union[bytes, str]) -> QuizImportDocument:
    """Parse a JSON quiz object.

    A UTF-8 byte order mark is tolerated since spreadsheet and text
    editors on Windows like to add one.
    """
    if isinstance(content, bytes):
        try:
            content = content.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise ImportDocumentError(f"File is not valid UTF-8: {e}") from e
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ImportDocumentError(f"JSON parsing error: {e}") from e
    if not isinstance(data, dict):
        raise ImportDocumentError("JSON parsing error: top-level value must be an object")
    try:
        return QuizImportDocument.model_validate(data)
    except SchemaError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ImportDocumentError(f"Invalid quiz document: {details}") from e
