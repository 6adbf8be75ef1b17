from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

try:
    from arrange import apply_accompaniment
    from constants import (
        APP_NAME,
        BRIDGE_HOST,
        BRIDGE_PORT,
        DEFAULT_MAX_TOKENS,
        FALLBACK_HTTP_TIMEOUT_SEC,
        FALLBACK_MAX_TOKENS,
        FALLBACK_TEMPERATURE,
        GENERATE_MAX_TOKENS,
        HTTP_TIMEOUT_SEC,
        MAX_REPAIR_ATTEMPTS,
        REGENERATE_MAX_TOKENS,
    )
    from errors import ScoreError
    from llm_client import call_llm, parse_llm_json, resolve_model
    from logger_config import logger
    from models import ArrangeConfig, CompositionSpec, GenerateRequest, ModelInfo, RenderRequest, TrackOverlay
    from musicxml_check import accept_musicxml
    from normalization import coerce_candidate
    from pipeline import RenderResult, build_fallback_score, render_artifacts
    from prompt_builder import (
        build_compose_messages,
        build_generate_messages,
        build_regenerate_messages,
        build_repair_messages,
    )
    from utils import summarize_text
    from validation import prepare_score
except ImportError:
    from .arrange import apply_accompaniment
    from .constants import (
        APP_NAME,
        BRIDGE_HOST,
        BRIDGE_PORT,
        DEFAULT_MAX_TOKENS,
        FALLBACK_HTTP_TIMEOUT_SEC,
        FALLBACK_MAX_TOKENS,
        FALLBACK_TEMPERATURE,
        GENERATE_MAX_TOKENS,
        HTTP_TIMEOUT_SEC,
        MAX_REPAIR_ATTEMPTS,
        REGENERATE_MAX_TOKENS,
    )
    from .errors import ScoreError
    from .llm_client import call_llm, parse_llm_json, resolve_model
    from .logger_config import logger
    from .models import ArrangeConfig, CompositionSpec, GenerateRequest, ModelInfo, RenderRequest, TrackOverlay
    from .musicxml_check import accept_musicxml
    from .normalization import coerce_candidate
    from .pipeline import RenderResult, build_fallback_score, render_artifacts
    from .prompt_builder import (
        build_compose_messages,
        build_generate_messages,
        build_regenerate_messages,
        build_repair_messages,
    )
    from .utils import summarize_text
    from .validation import prepare_score

app = FastAPI(title=APP_NAME)


def dump_overlays(overlays: List[TrackOverlay]) -> List[Dict[str, Any]]:
    return [overlay.model_dump(mode="json", by_alias=True, exclude_none=True) for overlay in overlays]


def encode_midi(midi: bytes) -> str:
    return base64.b64encode(midi).decode("ascii")


def score_error(exc: ScoreError, label: str) -> HTTPException:
    logger.warning("%s rejected: %s", label, summarize_text(exc.message))
    return HTTPException(status_code=422, detail=exc.to_dict())


def render_payload(result: RenderResult) -> Dict[str, Any]:
    return {
        "musicxml": result.musicxml,
        "midi_b64": encode_midi(result.midi),
        "overlays": dump_overlays(result.overlays),
        "annotations": result.annotations,
    }


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/render")
def render(request: RenderRequest) -> JSONResponse:
    logger.info(
        "Render: arrange=%s overlays_xml=%s overlays_midi=%s",
        request.arrange is not None,
        request.include_overlays_in_musicxml,
        request.include_overlays_in_midi,
    )
    try:
        score = prepare_score(request.score)
        result = render_artifacts(
            score,
            request.arrange,
            include_overlays_in_musicxml=request.include_overlays_in_musicxml,
            include_overlays_in_midi=request.include_overlays_in_midi,
        )
    except ScoreError as exc:
        raise score_error(exc, "Render") from exc
    return JSONResponse(content=render_payload(result))


@app.post("/arrange")
def arrange(request: RenderRequest) -> JSONResponse:
    cfg = request.arrange or ArrangeConfig()
    logger.info(
        "Arrange: style=%s enabled=%s seed=%s",
        cfg.accompaniment.style,
        cfg.accompaniment.enabled,
        cfg.seed,
    )
    try:
        score = prepare_score(request.score)
        arranged = apply_accompaniment(score, cfg)
    except ScoreError as exc:
        raise score_error(exc, "Arrange") from exc
    if arranged.annotations.get("style_fallback"):
        logger.warning(
            "Unknown accompaniment style %r, using %s",
            arranged.annotations.get("requested_style"),
            arranged.annotations.get("resolved_style"),
        )
    logger.info("Arrange produced %d overlays", len(arranged.overlays))
    return JSONResponse(content=arranged.model_dump(mode="json", by_alias=True, exclude_none=True))


def request_completion(
    model_info: Optional[ModelInfo],
    messages: List[Dict[str, str]],
    max_tokens: int = DEFAULT_MAX_TOKENS,
    fallback_max_tokens: int = FALLBACK_MAX_TOKENS,
) -> str:
    provider, model_name, fallback_model_name, base_url, temperature, api_key = resolve_model(model_info)
    try:
        return call_llm(
            provider,
            model_name,
            base_url,
            temperature,
            messages,
            api_key,
            timeout=HTTP_TIMEOUT_SEC,
            max_tokens=max_tokens,
        )
    except HTTPException as exc:
        if exc.status_code != 502:
            raise
        logger.warning("Primary model %s failed (%s), retrying with %s", model_name, exc.detail, fallback_model_name)
    return request_fallback_completion(model_info, messages, fallback_max_tokens)


def request_fallback_completion(
    model_info: Optional[ModelInfo],
    messages: List[Dict[str, str]],
    max_tokens: int = FALLBACK_MAX_TOKENS,
) -> str:
    provider, _, fallback_model_name, base_url, _, api_key = resolve_model(model_info)
    return call_llm(
        provider,
        fallback_model_name,
        base_url,
        FALLBACK_TEMPERATURE,
        messages,
        api_key,
        timeout=FALLBACK_HTTP_TIMEOUT_SEC,
        max_tokens=max_tokens,
    )


def parse_with_repair(spec: CompositionSpec, content: str) -> Optional[Dict[str, Any]]:
    try:
        return parse_llm_json(content)
    except ValueError:
        logger.warning("LLM JSON parse failed, starting repair attempts")
    for attempt in range(MAX_REPAIR_ATTEMPTS):
        logger.info("Repair attempt %d/%d", attempt + 1, MAX_REPAIR_ATTEMPTS)
        content = request_completion(spec.model, build_repair_messages(content))
        logger.info("Repair response received: %d chars", len(content))
        logger.info("Repair response preview: %s", summarize_text(content))
        try:
            return parse_llm_json(content)
        except ValueError:
            continue
    logger.error("LLM JSON parse failed after repair attempts")
    return None


@app.post("/compose")
def compose(spec: CompositionSpec) -> JSONResponse:
    logger.info(
        "Compose: title=%s style=%s measures=%d instrumentation=%s",
        spec.title,
        spec.style,
        spec.length.measures,
        ",".join(spec.instrumentation),
    )
    if spec.user_prompt:
        logger.info("User prompt: %s", summarize_text(spec.user_prompt))

    content = request_completion(spec.model, build_compose_messages(spec))
    logger.info("LLM response received: %d chars", len(content))
    logger.info("LLM response preview: %s", summarize_text(content))

    candidate = coerce_candidate(parse_with_repair(spec, content))
    arrange_cfg = spec.arrange or ArrangeConfig()
    try:
        if not candidate:
            logger.warning("No usable score from LLM, using deterministic fallback score")
            candidate = build_fallback_score(spec)
        score = prepare_score(candidate)
        result = render_artifacts(
            score,
            arrange_cfg,
            include_overlays_in_musicxml=spec.include_overlays_in_musicxml,
            include_overlays_in_midi=spec.include_overlays_in_midi,
        )
    except ScoreError as exc:
        raise score_error(exc, "Compose") from exc
    return JSONResponse(content={"musicxml": result.musicxml, "midi_b64": encode_midi(result.midi)})


@app.post("/generate")
def generate(request: GenerateRequest) -> JSONResponse:
    logger.info(
        "Generate: style=%s key=%s tempo=%s measures=%s",
        request.style,
        request.key,
        request.tempo,
        request.measures,
    )
    logger.info("User prompt: %s", summarize_text(request.prompt))

    content = request_completion(
        request.model,
        build_generate_messages(request),
        max_tokens=GENERATE_MAX_TOKENS,
        fallback_max_tokens=GENERATE_MAX_TOKENS,
    )
    logger.info("LLM response received: %d chars", len(content))
    xml = accept_musicxml(content)
    if xml is None:
        logger.warning("LLM response is not usable MusicXML, regenerating with fallback model")
        logger.info("LLM response preview: %s", summarize_text(content))
        content = request_fallback_completion(request.model, build_regenerate_messages(), REGENERATE_MAX_TOKENS)
        xml = accept_musicxml(content)
    if xml is None:
        logger.error("Invalid MusicXML from model after regeneration")
        raise HTTPException(status_code=502, detail="Invalid MusicXML from model")
    size = len(xml.encode("utf-8"))
    logger.info("Generated MusicXML: %d bytes", size)
    return JSONResponse(content={"xml": xml, "bytes": size})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=BRIDGE_HOST, port=BRIDGE_PORT, log_level="info")
