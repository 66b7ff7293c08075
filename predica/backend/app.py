from __future__ import annotations

"""FastAPI backend for the Predica sermon coach.

Run with:
    uvicorn predica.backend.app:app --reload --port 3000

Env vars required:
    OPENAI_API_KEY

The calibration prompts file (``prompts.json`` by default) must exist at
startup; a missing or malformed file aborts the server start.
"""

import shutil
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from loguru import logger
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import (
    ALLOWED_ORIGINS,
    MAX_SECTION_SESSIONS,
    MIN_CONVERTED_AUDIO_BYTES,
    OPENAI_TTS_MODEL,
    OPENAI_TTS_VOICE,
    PROMPTS_FILE,
    PUBLIC_DIR,
    QUESTIONS_FILE,
    TRANSCRIPTION_BACKOFF_SECONDS,
    TRANSCRIPTION_MAX_ATTEMPTS,
    UPLOAD_DIR,
    setup_logging,
)
from predica.audio.conversion import cleanup_files, convert_to_wav, validate_converted
from predica.calibration.store import CalibrationStore
from predica.llm.evaluator import (
    apply_suggestions,
    evaluate_aggregate,
    evaluate_section,
    synthesize_speech,
    transcribe_with_retry,
)
from predica.memory import crud
from predica.memory.db import configure_engine, init_db
from predica.memory.models import SECTIONS
from predica.memory.questions import QuestionsStore
from predica.memory.sections import SectionStateCache
from predica.utils.openai_client import get_openai_client
from utils.error_handler import (
    AudioConversionError,
    CalibrationConfigError,
    PersistenceError,
    ProviderError,
    TranscriptionError,
)

setup_logging()

# ---------------------------------------------------------------------------
# Pydantic Schemas
# ---------------------------------------------------------------------------


class PreguntasRequest(BaseModel):
    tema: Optional[str] = None
    proposito: Optional[str] = None
    audiencia: Optional[str] = None
    tiempo: Optional[str] = None


class EscritoRequest(BaseModel):
    section: Optional[str] = None
    texto: Optional[str] = None


class SugerenciasRequest(BaseModel):
    transcripcion: Optional[str] = None
    evaluacion: Optional[str] = None
    seccion: Optional[str] = None


class MensajeRequest(BaseModel):
    usuario: Optional[str] = None
    titulo: Optional[str] = None
    introduccion: Optional[str] = None
    costura: Optional[str] = None
    problematica: Optional[str] = None
    conector: Optional[str] = None
    desarrollo: Optional[str] = None
    conclusion: Optional[str] = None
    ministracion: Optional[str] = None


class TTSRequest(BaseModel):
    model: str = OPENAI_TTS_MODEL
    voice: str = OPENAI_TTS_VOICE
    input: str


class EvaluacionResponse(BaseModel):
    evaluacion: str


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_llm_client(request: Request) -> Any:
    client = getattr(request.app.state, "llm_client", None)
    if client is None:
        try:
            client = get_openai_client()
        except ValueError as e:
            logger.error("OpenAI client could not be created: {}", e)
            raise HTTPException(status_code=500, detail="Cliente de OpenAI no inicializado. Revisa los logs del servidor.")
        request.app.state.llm_client = client
    return client


def get_calibration(request: Request) -> CalibrationStore:
    return request.app.state.calibration


def get_sections(request: Request) -> SectionStateCache:
    return request.app.state.sections


def get_questions(request: Request) -> QuestionsStore:
    return request.app.state.questions


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

router = APIRouter()


@router.post("/transcribir")
async def transcribir(
    request: Request,
    audio: Optional[UploadFile] = File(None),
    section: Optional[str] = Form(None),
    session_id: Optional[str] = Header(default=None, alias="X-Session-Id"),
    client: Any = Depends(get_llm_client),
    calibration: CalibrationStore = Depends(get_calibration),
    sections: SectionStateCache = Depends(get_sections),
):
    if audio is None or not section:
        raise HTTPException(status_code=400, detail="No se recibió archivo de audio o sección.")

    logger.info("Audio received for {}: {}", section, audio.filename)
    upload_dir: Path = request.app.state.upload_dir
    upload_dir.mkdir(parents=True, exist_ok=True)
    stem = uuid.uuid4().hex
    input_path = upload_dir / stem
    output_path = upload_dir / f"{stem}.wav"

    try:
        with input_path.open("wb") as buffer:
            shutil.copyfileobj(audio.file, buffer)

        try:
            await convert_to_wav(input_path, output_path)
        except AudioConversionError as e:
            logger.error("ffmpeg conversion failed: {}", e)
            raise HTTPException(status_code=500, detail="Error en la conversión del archivo.")

        try:
            validate_converted(output_path, MIN_CONVERTED_AUDIO_BYTES)
        except AudioConversionError as e:
            logger.error("Converted file rejected: {}", e)
            raise HTTPException(status_code=500, detail="El archivo convertido no es válido.")

        try:
            transcripcion = await transcribe_with_retry(
                client,
                output_path,
                max_attempts=request.app.state.transcription_max_attempts,
                backoff=request.app.state.transcription_backoff,
            )
        except TranscriptionError as e:
            logger.error("Transcription failed: {}", e)
            raise HTTPException(status_code=500, detail="Error en la transcripción del audio.")
        if not transcripcion:
            raise HTTPException(status_code=500, detail="Error en la transcripción: no se obtuvo texto.")

        sections.set_section(section, transcripcion, session_id)
        evaluacion = await evaluate_section(client, section, transcripcion, calibration.get(section))
        logger.info("Evaluation for {} (ok={})", section, evaluacion.ok)

        payload: Dict[str, str] = {"transcripcion": transcripcion, "evaluacion": evaluacion.text}
        if sections.all_sections_filled(session_id):
            hilo = await evaluate_aggregate(client, sections.snapshot(session_id))
            logger.info("Whole-sermon evaluation produced (ok={})", hilo.ok)
            payload["evaluacionHilo"] = hilo.text
        return payload
    finally:
        cleanup_files(input_path, output_path)


@router.post("/guardar-preguntas")
async def guardar_preguntas(body: PreguntasRequest, questions: QuestionsStore = Depends(get_questions)):
    answers = body.model_dump()
    if not all(answers.values()):
        raise HTTPException(status_code=400, detail="Faltan respuestas.")
    questions.save(answers)
    return {"success": True}


@router.get("/ver-preguntas")
async def ver_preguntas(questions: QuestionsStore = Depends(get_questions)):
    return questions.view()


@router.post("/limpiar-preguntas")
async def limpiar_preguntas(questions: QuestionsStore = Depends(get_questions)):
    try:
        questions.clear()
    except OSError as e:
        logger.error("Could not clear initial questions: {}", e)
        raise HTTPException(status_code=500, detail="Error al limpiar preguntas.")
    return {"success": True}


@router.post("/evaluar-escrito", response_model=EvaluacionResponse)
async def evaluar_escrito(
    body: EscritoRequest,
    client: Any = Depends(get_llm_client),
    calibration: CalibrationStore = Depends(get_calibration),
):
    if not body.texto:
        raise HTTPException(status_code=400, detail="El texto es requerido.")
    logger.info("Evaluating written text for section {!r}", body.section)
    result = await evaluate_section(client, body.section, body.texto, calibration.get(body.section))
    return EvaluacionResponse(evaluacion=result.text)


@router.get("/evaluacion", response_model=EvaluacionResponse)
async def evaluacion(
    seccion: Optional[str] = Query(default=None),
    session_id: Optional[str] = Header(default=None, alias="X-Session-Id"),
    client: Any = Depends(get_llm_client),
    calibration: CalibrationStore = Depends(get_calibration),
    sections: SectionStateCache = Depends(get_sections),
):
    if not seccion:
        raise HTTPException(status_code=400, detail="Sección no especificada.")
    texto = sections.get_section(seccion, session_id) or "Texto no disponible."
    result = await evaluate_section(client, seccion, texto, calibration.get(seccion))
    return EvaluacionResponse(evaluacion=result.text)


@router.post("/aplicar-sugerencias")
async def aplicar_sugerencias(
    body: SugerenciasRequest,
    client: Any = Depends(get_llm_client),
    calibration: CalibrationStore = Depends(get_calibration),
):
    if not body.transcripcion or not body.evaluacion or not body.seccion:
        raise HTTPException(status_code=400, detail="Faltan la transcripción, la evaluación o la sección.")
    try:
        sugerida = await apply_suggestions(
            client,
            body.seccion,
            calibration.get(body.seccion),
            body.transcripcion,
            body.evaluacion,
        )
    except ProviderError as e:
        logger.error("Applying suggestions failed: {}", e)
        raise HTTPException(status_code=500, detail="No se pudo aplicar las sugerencias.")
    return {"transcripcionSugerida": sugerida}


@router.post("/guardar-mensaje")
async def guardar_mensaje(body: MensajeRequest):
    if not body.usuario:
        raise HTTPException(status_code=400, detail="El usuario es obligatorio")
    try:
        mensaje_id = crud.upsert_message(body.usuario, body.model_dump(include=set(SECTIONS)))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True, "id": mensaje_id}


@router.get("/obtener-mensajes")
async def obtener_mensajes() -> List[Dict]:
    try:
        return crud.list_messages()
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/obtener-ultimo-mensaje")
async def obtener_ultimo_mensaje(usuario: Optional[str] = Query(default=None)):
    if not usuario:
        raise HTTPException(status_code=400, detail="El parámetro 'usuario' es obligatorio")
    try:
        mensaje = crud.get_latest_message(usuario)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if mensaje is None:
        return {"success": False, "message": "No se encontraron notas para este usuario."}
    return {"success": True, "mensaje": mensaje}


@router.post("/actualizar-calibracion")
async def actualizar_calibracion(
    nuevos_prompts: Any = Body(default=None),
    calibration: CalibrationStore = Depends(get_calibration),
):
    if not isinstance(nuevos_prompts, dict) or not all(isinstance(v, str) for v in nuevos_prompts.values()):
        raise HTTPException(status_code=400, detail="Formato inválido.")
    try:
        merged = calibration.merge(nuevos_prompts)
    except OSError as e:
        logger.error("Could not persist calibration prompts: {}", e)
        raise HTTPException(status_code=500, detail="Error al guardar la calibración.")
    logger.info("Calibration prompts updated: {}", sorted(nuevos_prompts))
    return {"success": True, "promptsCalibracion": merged}


@router.get("/obtener-calibracion")
async def obtener_calibracion(calibration: CalibrationStore = Depends(get_calibration)):
    return {"promptsCalibracion": calibration.prompts}


@router.post("/api/tts")
async def tts(body: TTSRequest, client: Any = Depends(get_llm_client)):
    try:
        audio = await synthesize_speech(client, body.model, body.voice, body.input)
    except ProviderError as e:
        logger.error("TTS failed: {}", e)
        raise HTTPException(status_code=500, detail="Error al generar el audio.")
    return Response(content=audio, media_type="audio/mpeg")


@router.get("/", include_in_schema=False)
async def index(request: Request):
    index_file = request.app.state.public_dir / "index.html"
    if not index_file.is_file():
        raise HTTPException(status_code=404, detail="Página no encontrada.")
    return FileResponse(index_file)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = [str(err.get("msg", "")) for err in exc.errors()]
    logger.warning("Invalid request to {}: {}", request.url.path, messages)
    return JSONResponse(status_code=400, content={"error": "Solicitud inválida.", "detalles": messages})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on {}", request.url.path)
    return JSONResponse(status_code=500, content={"error": "Error interno. Revisa logs del servidor."})


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------


def create_app(
    prompts_file: Path = PROMPTS_FILE,
    questions_file: Path = QUESTIONS_FILE,
    upload_dir: Path = UPLOAD_DIR,
    public_dir: Path = PUBLIC_DIR,
    database_url: str | None = None,
    transcription_max_attempts: int = TRANSCRIPTION_MAX_ATTEMPTS,
    transcription_backoff: float = TRANSCRIPTION_BACKOFF_SECONDS,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            app.state.calibration.load()
        except CalibrationConfigError as e:
            logger.critical("Cannot start without calibration prompts: {}", e)
            raise
        if database_url:
            configure_engine(database_url)
        init_db()
        app.state.upload_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Predica backend ready")
        yield

    app = FastAPI(title="Predica Sermon Coach", version="0.1.0", lifespan=lifespan)

    app.state.calibration = CalibrationStore(Path(prompts_file))
    app.state.questions = QuestionsStore(Path(questions_file))
    app.state.sections = SectionStateCache(max_sessions=MAX_SECTION_SESSIONS)
    app.state.upload_dir = Path(upload_dir)
    app.state.public_dir = Path(public_dir)
    app.state.transcription_max_attempts = transcription_max_attempts
    app.state.transcription_backoff = transcription_backoff
    app.state.llm_client = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(router)

    # Remaining front-end assets (scripts, styles) come straight from public/.
    if Path(public_dir).is_dir():
        app.mount("/", StaticFiles(directory=str(public_dir)), name="public")

    return app


app = create_app()
