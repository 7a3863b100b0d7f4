"""FastAPI application entrypoint and HTTP controllers.

Controllers are intentionally thin: they accept requests, delegate to
services, and translate typed service errors into HTTP status codes.
Identity is supplied by the caller as an opaque learner id; there is no
authentication layer in this service.

Endpoints implemented:
- POST /quizzes/import
- POST /quizzes/import/json
- GET /quizzes/{quiz_id}
- PATCH /quizzes/{quiz_id}, DELETE /quizzes/{quiz_id}
- POST /quizzes/{quiz_id}/questions, PUT /quizzes/{quiz_id}/questions/order
- PUT /questions/{question_id}, DELETE /questions/{question_id}
- POST /quizzes/{quiz_id}/attempts
- GET /quizzes/{quiz_id}/attempts/active
- PUT /attempts/{attempt_id}/responses/{question_id}
- GET /attempts/{attempt_id}/responses
- POST /attempts/{attempt_id}/complete
- GET /attempts/{attempt_id}/results
- GET /learners/{learner_id}/attempts
- GET /health
"""

import json
import logging
import time
import uuid
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session

from . import services
from .config import settings
from .database import create_db_and_tables, get_session
from .errors import AttemptCompleted, QuestionInUse, QuizCoreError, QuizInUse
from .schemas import (
    AnswerIn,
    AttemptOut,
    AttemptSummary,
    QuestionEdit,
    QuizOut,
    QuizUpdate,
    ReorderIn,
    ResponseOut,
    StartAttemptIn,
)

app = FastAPI(title="Quiz Core API")
logger = logging.getLogger("quizcore.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
            ensure_ascii=True,
        ),
    )
    return response


def _http_error(exc: QuizCoreError) -> HTTPException:
    """Map a typed service error to an HTTP error."""
    if isinstance(exc, LookupError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (AttemptCompleted, QuizInUse, QuestionInUse)):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _import_response(result) -> JSONResponse:
    return JSONResponse(status_code=200 if result.success else 400, content=result.model_dump())


@app.post('/quizzes/import')
def import_quiz_file(file: UploadFile = File(...), db: Session = Depends(get_session)):
    """Upload a quiz document (JSON) and import it.

    Returns the `ImportResult`; status 400 when nothing was imported.
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail='no file')
    content = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail='file too large')
    result = services.ImportService(db).import_file(content, file.filename)
    return _import_response(result)


@app.post('/quizzes/import/json')
async def import_quiz_json(request: Request, db: Session = Depends(get_session)):
    """Import a quiz document sent as the raw JSON request body."""
    body = await request.body()
    if len(body) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail='payload too large')
    result = services.ImportService(db).import_json(body)
    return _import_response(result)


@app.get('/quizzes/{quiz_id}')
def get_quiz(quiz_id: int, db: Session = Depends(get_session)):
    """Return an active quiz for taking, without correct answers."""
    try:
        return services.QuizService(db).get_for_taking(quiz_id)
    except QuizCoreError as e:
        raise _http_error(e)


@app.post('/quizzes/{quiz_id}/attempts', response_model=AttemptOut)
def start_attempt(quiz_id: int, payload: StartAttemptIn, db: Session = Depends(get_session)):
    """Start an attempt, or resume the learner's open attempt."""
    try:
        return services.AttemptService(db).start(quiz_id, payload.learner_id)
    except QuizCoreError as e:
        raise _http_error(e)


@app.get('/quizzes/{quiz_id}/attempts/active', response_model=AttemptOut)
def get_active_attempt(quiz_id: int, learner_id: str, db: Session = Depends(get_session)):
    """Return the learner's open attempt for a quiz (404 when none)."""
    attempt = services.AttemptService(db).get_active(quiz_id, learner_id)
    if attempt is None:
        raise HTTPException(status_code=404, detail='no active attempt')
    return attempt


@app.put('/attempts/{attempt_id}/responses/{question_id}', response_model=ResponseOut)
def record_answer(attempt_id: int, question_id: int, payload: AnswerIn, db: Session = Depends(get_session)):
    """Record (or replace) the answer to one question."""
    try:
        return services.ResponseService(db).record_answer(
            attempt_id, question_id, payload.selected_option_ids, payload.text_answer
        )
    except QuizCoreError as e:
        raise _http_error(e)


@app.get('/attempts/{attempt_id}/responses')
def saved_answers(attempt_id: int, db: Session = Depends(get_session)):
    """Return the selected option ids per question for an attempt."""
    try:
        return services.AttemptService(db).saved_answers(attempt_id)
    except QuizCoreError as e:
        raise _http_error(e)


@app.post('/attempts/{attempt_id}/complete', response_model=AttemptOut)
def complete_attempt(attempt_id: int, db: Session = Depends(get_session)):
    """Finalize an attempt and return its score."""
    try:
        return services.AttemptService(db).complete(attempt_id)
    except QuizCoreError as e:
        raise _http_error(e)


@app.get('/attempts/{attempt_id}/results')
def attempt_results(attempt_id: int, db: Session = Depends(get_session)):
    """Per-question review of an attempt."""
    try:
        return services.ScoringService(db).attempt_results(attempt_id)
    except QuizCoreError as e:
        raise _http_error(e)


@app.get('/learners/{learner_id}/attempts', response_model=List[AttemptSummary])
def learner_attempts(learner_id: str, category: Optional[str] = None, db: Session = Depends(get_session)):
    """Completed attempts of a learner, newest first."""
    return services.AttemptService(db).list_for_learner(learner_id, category)


@app.patch('/quizzes/{quiz_id}', response_model=QuizOut)
def update_quiz(quiz_id: int, payload: QuizUpdate, db: Session = Depends(get_session)):
    """Edit quiz settings; only the fields sent are changed."""
    try:
        return services.QuizService(db).update(quiz_id, payload)
    except QuizCoreError as e:
        raise _http_error(e)


@app.delete('/quizzes/{quiz_id}')
def delete_quiz(quiz_id: int, db: Session = Depends(get_session)):
    """Delete a quiz that has no attempts (409 otherwise)."""
    try:
        services.QuizService(db).delete(quiz_id)
    except QuizCoreError as e:
        raise _http_error(e)
    return {"deleted": quiz_id}


@app.post('/quizzes/{quiz_id}/questions')
def add_question(quiz_id: int, payload: QuestionEdit, db: Session = Depends(get_session)):
    try:
        question = services.QuizService(db).add_question(quiz_id, payload)
    except QuizCoreError as e:
        raise _http_error(e)
    return {"question_id": question.id}


@app.put('/quizzes/{quiz_id}/questions/order')
def reorder_questions(quiz_id: int, payload: ReorderIn, db: Session = Depends(get_session)):
    """Reorder a quiz's questions by listing their ids."""
    try:
        questions = services.QuizService(db).reorder_questions(quiz_id, payload.question_ids)
    except QuizCoreError as e:
        raise _http_error(e)
    return [{"question_id": q.id, "order_index": q.order_index} for q in questions]


@app.put('/questions/{question_id}')
def update_question(question_id: int, payload: QuestionEdit, db: Session = Depends(get_session)):
    """Replace a question's content and options."""
    try:
        question = services.QuizService(db).update_question(question_id, payload)
    except QuizCoreError as e:
        raise _http_error(e)
    return {"question_id": question.id}


@app.delete('/questions/{question_id}')
def delete_question(question_id: int, db: Session = Depends(get_session)):
    try:
        services.QuizService(db).delete_question(question_id)
    except QuizCoreError as e:
        raise _http_error(e)
    return {"deleted": question_id}


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
