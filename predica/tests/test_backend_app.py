import json

import pytest
from fastapi.testclient import TestClient

from predica.backend import app as app_module
from predica.backend.app import create_app
from predica.memory.models import SECTIONS
from utils.error_handler import AudioConversionError, CalibrationConfigError


@pytest.fixture
def fake_ffmpeg(monkeypatch):
    """Replace ffmpeg with a stub that writes a plausible WAV file."""
    calls = []

    async def _convert(input_path, output_path):
        calls.append((input_path, output_path))
        output_path.write_bytes(b"RIFF" + b"\0" * 4096)
        return output_path

    monkeypatch.setattr(app_module, "convert_to_wav", _convert)
    return calls


def _upload(client, section, headers=None):
    return client.post(
        "/transcribir",
        files={"audio": ("grabacion.webm", b"fake-webm-bytes", "audio/webm")},
        data={"section": section},
        headers=headers or {},
    )


# ---------------------------------------------------------------------------
# /transcribir
# ---------------------------------------------------------------------------


def test_transcribir_returns_text_and_evaluation(client, fake_llm, fake_ffmpeg, app_paths):
    fake_llm.transcripts = ["Hello"]

    resp = _upload(client, "titulo")

    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["transcripcion"] == "Hello"
    assert data["evaluacion"] == "Evaluación de: Evalúa este título: Hello"
    assert "evaluacionHilo" not in data
    # Temporary upload and WAV are removed.
    assert list(app_paths["upload_dir"].iterdir()) == []


def test_transcribir_requires_audio_and_section(client):
    resp = client.post("/transcribir", data={"section": "titulo"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "No se recibió archivo de audio o sección."}

    resp = client.post("/transcribir", files={"audio": ("a.webm", b"x", "audio/webm")})
    assert resp.status_code == 400


def test_transcribir_adds_whole_sermon_evaluation_when_complete(client, fake_llm, fake_ffmpeg):
    headers = {"X-Session-Id": "sesion-1"}
    for section in SECTIONS[:-1]:
        assert "evaluacionHilo" not in _upload(client, section, headers).json()

    data = _upload(client, "ministracion", headers).json()

    assert "evaluacionHilo" in data
    assert "Evalúa la coherencia de esta prédica" in data["evaluacionHilo"]
    assert "**Ministración:** texto transcrito" in data["evaluacionHilo"]

    # Another session has its own, still incomplete, outline.
    other = _upload(client, "titulo", {"X-Session-Id": "sesion-2"}).json()
    assert "evaluacionHilo" not in other


def test_transcribir_conversion_failure(client, monkeypatch, app_paths):
    async def _broken(input_path, output_path):
        raise AudioConversionError("ffmpeg exited with 1")

    monkeypatch.setattr(app_module, "convert_to_wav", _broken)

    resp = _upload(client, "titulo")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Error en la conversión del archivo."}
    assert list(app_paths["upload_dir"].iterdir()) == []


def test_transcribir_rejects_tiny_conversion(client, monkeypatch):
    async def _tiny(input_path, output_path):
        output_path.write_bytes(b"\0" * 10)
        return output_path

    monkeypatch.setattr(app_module, "convert_to_wav", _tiny)

    resp = _upload(client, "titulo")
    assert resp.status_code == 500
    assert resp.json() == {"error": "El archivo convertido no es válido."}


def test_transcribir_transcription_exhausted(client, fake_llm, fake_ffmpeg):
    fake_llm.transcripts = [RuntimeError("503")] * 3

    resp = _upload(client, "titulo")

    assert resp.status_code == 500
    assert resp.json() == {"error": "Error en la transcripción del audio."}
    assert fake_llm.transcription_calls == 3


def test_transcribir_empty_text(client, fake_llm, fake_ffmpeg):
    fake_llm.transcripts = [""]
    resp = _upload(client, "titulo")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Error en la transcripción: no se obtuvo texto."}


def test_transcribir_soft_fails_evaluation(client, fake_llm, fake_ffmpeg):
    fake_llm.chat_error = RuntimeError("provider down")
    resp = _upload(client, "titulo")
    assert resp.status_code == 200
    assert resp.json()["evaluacion"] == "Error en la evaluación de la transcripción."


# ---------------------------------------------------------------------------
# Evaluation endpoints
# ---------------------------------------------------------------------------


def test_evaluacion_uses_cached_section_text(client, app, fake_llm):
    app.state.sections.set_section("titulo", "Hello")

    resp = client.get("/evaluacion", params={"seccion": "titulo"})

    assert resp.status_code == 200
    assert fake_llm.prompts[-1] == "Evalúa este título: Hello"
    assert "Hello" in resp.json()["evaluacion"]


def test_evaluacion_without_cached_text(client, fake_llm):
    resp = client.get("/evaluacion", params={"seccion": "introduccion"})
    assert resp.status_code == 200
    assert fake_llm.prompts[-1] == "Evalúa la introducción.\n\nTexto a evaluar:\nTexto no disponible."


def test_evaluacion_requires_section(client):
    resp = client.get("/evaluacion")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Sección no especificada."}


def test_evaluar_escrito(client, fake_llm):
    resp = client.post("/evaluar-escrito", json={"section": "titulo", "texto": "Gracia sobre gracia"})
    assert resp.status_code == 200
    assert resp.json()["evaluacion"] == "Evaluación de: Evalúa este título: Gracia sobre gracia"

    resp = client.post("/evaluar-escrito", json={"section": "titulo"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "El texto es requerido."}


def test_aplicar_sugerencias(client, fake_llm):
    body = {"transcripcion": "Mi título", "evaluacion": "Hazlo más corto", "seccion": "titulo"}
    resp = client.post("/aplicar-sugerencias", json=body)

    assert resp.status_code == 200
    sugerida = resp.json()["transcripcionSugerida"]
    assert "Evalúa este título: [transcripción]" in sugerida
    assert "Hazlo más corto" in sugerida

    resp = client.post("/aplicar-sugerencias", json={"transcripcion": "x", "seccion": "titulo"})
    assert resp.status_code == 400

    fake_llm.chat_error = RuntimeError("quota")
    resp = client.post("/aplicar-sugerencias", json=body)
    assert resp.status_code == 500
    assert resp.json() == {"error": "No se pudo aplicar las sugerencias."}


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def test_guardar_mensaje_merges_into_single_row(client):
    first = client.post("/guardar-mensaje", json={"usuario": "ana", "titulo": "T1"})
    second = client.post("/guardar-mensaje", json={"usuario": "ana", "introduccion": "I1"})

    assert first.status_code == 200 and second.status_code == 200
    assert first.json()["success"] is True
    assert first.json()["id"] == second.json()["id"]

    rows = [m for m in client.get("/obtener-mensajes").json() if m["usuario"] == "ana"]
    assert len(rows) == 1
    assert rows[0]["titulo"] == "T1"
    assert rows[0]["introduccion"] == "I1"


def test_guardar_mensaje_requires_usuario(client):
    resp = client.post("/guardar-mensaje", json={"titulo": "T1"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "El usuario es obligatorio"}


def test_obtener_ultimo_mensaje(client):
    resp = client.get("/obtener-ultimo-mensaje", params={"usuario": "luis"})
    assert resp.json() == {"success": False, "message": "No se encontraron notas para este usuario."}

    client.post("/guardar-mensaje", json={"usuario": "luis", "conclusion": "Amén"})
    data = client.get("/obtener-ultimo-mensaje", params={"usuario": "luis"}).json()
    assert data["success"] is True
    assert data["mensaje"]["conclusion"] == "Amén"
    assert data["mensaje"]["titulo"] == ""

    assert client.get("/obtener-ultimo-mensaje").status_code == 400


# ---------------------------------------------------------------------------
# Calibration
# ---------------------------------------------------------------------------


def test_actualizar_calibracion_merges_and_persists(client, app_paths):
    resp = client.post("/actualizar-calibracion", json={"titulo": "New prompt"})
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    prompts = client.get("/obtener-calibracion").json()["promptsCalibracion"]
    assert prompts["titulo"] == "New prompt"
    assert prompts["introduccion"] == "Evalúa la introducción."

    on_disk = json.loads(app_paths["prompts_file"].read_text(encoding="utf-8"))
    assert on_disk["promptsCalibracion"] == prompts


def test_actualizar_calibracion_rejects_non_objects(client):
    resp = client.post("/actualizar-calibracion", json=["titulo"])
    assert resp.status_code == 400
    assert resp.json() == {"error": "Formato inválido."}


def test_startup_fails_without_prompts_file(app_paths, tmp_path):
    app_paths["prompts_file"] = tmp_path / "missing.json"
    broken = create_app(**app_paths)
    with pytest.raises(CalibrationConfigError):
        with TestClient(broken):
            pass


# ---------------------------------------------------------------------------
# Initial questions, TTS, static page
# ---------------------------------------------------------------------------


def test_preguntas_flow(client, app, app_paths):
    answers = {"tema": "Fe", "proposito": "Animar", "audiencia": "Jóvenes", "tiempo": "30 min"}
    assert client.post("/guardar-preguntas", json=answers).json() == {"success": True}
    assert app.state.questions.answers == answers

    incomplete = dict(answers, tiempo="")
    resp = client.post("/guardar-preguntas", json=incomplete)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Faltan respuestas."}

    # Always blank, whatever was saved.
    assert client.get("/ver-preguntas").json() == {"tema": "", "proposito": "", "audiencia": "", "tiempo": ""}

    assert client.post("/limpiar-preguntas").json() == {"success": True}
    assert app.state.questions.answers["tema"] == ""
    saved = json.loads(app_paths["questions_file"].read_text(encoding="utf-8"))
    assert saved == {"tema": "", "proposito": "", "audiencia": "", "tiempo": ""}


def test_tts_returns_mpeg(client, fake_llm):
    resp = client.post("/api/tts", json={"model": "tts-1-hd", "voice": "nova", "input": "Hola"})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "audio/mpeg"
    assert resp.content == b"ID3-fake-mp3"
    assert fake_llm.speech_calls == [("tts-1-hd", "nova", "Hola")]


def test_tts_provider_failure(client, fake_llm):
    fake_llm.speech_error = RuntimeError("bad voice")
    resp = client.post("/api/tts", json={"input": "Hola"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Error al generar el audio."}


def test_index_page(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert "Predica" in resp.text


def test_evaluacion_reads_do_not_grow_section_state(client, app):
    for i in range(20):
        client.get("/evaluacion", params={"seccion": "titulo"}, headers={"X-Session-Id": f"visitante-{i}"})
    assert len(app.state.sections) == 0
