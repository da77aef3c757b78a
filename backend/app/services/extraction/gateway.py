"""Vision extraction through an OpenAI-compatible AI gateway."""

from __future__ import annotations

import json
from typing import Any, Mapping

from loguru import logger
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI
from pydantic import ValidationError

from app.core.config import Settings, get_settings
from app.schemas import BackendResponse, RawSlip
from ingestion.errors import BackendFailure
from ingestion.taxonomy import SPORTS

from .base import ModelTier, error_response, exception_summary

_FIELD_KEYS = (
    "mandante",
    "visitante",
    "dataHora",
    "esporte",
    "mercado",
    "selecao",
    "odd",
    "stake",
    "retorno",
    "resultado",
    "bookmakerNome",
)

_MARKET_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Moneyline / 1X2": ("1x2", "moneyline", "match winner", "vencedor"),
    "Over": ("over", "acima", "mais de"),
    "Under": ("under", "abaixo", "menos de"),
    "Handicap Asiático": ("handicap asiático", "asian handicap", "ah"),
    "Handicap Europeu": ("handicap europeu", "european handicap", "eh"),
    "Ambas Marcam (BTTS)": ("btts", "ambas marcam", "both teams to score", "gol gol"),
    "Resultado Exato": ("resultado exato", "correct score", "placar exato"),
    "Dupla Chance": ("dupla chance", "double chance"),
    "Draw No Bet": ("draw no bet", "dnb", "empate anula"),
    "Total de Escanteios": ("cantos", "corners", "escanteios"),
}


def build_system_prompt() -> str:
    sports = ", ".join(sport for sport in SPORTS if sport != "Outro")
    keywords = "\n".join(
        f"- {market}: {', '.join(words)}" for market, words in _MARKET_KEYWORDS.items()
    )
    fields = ",\n".join(
        f'  "{key}": {{ "value": "texto ou null", "confidence": "high|medium|low|none" }}'
        for key in _FIELD_KEYS
    )
    return (
        "Você é um especialista em ler boletins de apostas esportivas. Extraia as "
        "informações do print de um boletim de aposta.\n\n"
        "REGRAS:\n"
        "1. Se não tiver certeza sobre um campo, retorne null para o valor.\n"
        '2. Eventos seguem padrões como "Time A x Time B", "Time A vs Time B".\n'
        "3. Mandante é o primeiro time e visitante o segundo.\n"
        "4. Copie odd, stake e retorno exatamente como aparecem, sem calcular.\n"
        '5. A seleção é o que foi apostado (ex: "Over 2.5", "Time A", "1").\n'
        "6. Data e hora no formato YYYY-MM-DDTHH:mm.\n\n"
        f"Esportes reconhecidos: {sports}\n\n"
        f"Mercados comuns e palavras-chave:\n{keywords}\n\n"
        f"FORMATO DE RESPOSTA (JSON estrito):\n{{\n{fields}\n}}\n\n"
        'Confiança: "high" texto claro e inequívoco; "medium" visível mas ambíguo; '
        '"low" parcialmente visível; "none" não detectado.'
    )


def _uppercase_teams(payload: Mapping[str, Any]) -> dict[str, Any]:
    data = dict(payload)
    for key in ("mandante", "visitante"):
        entry = data.get(key)
        if isinstance(entry, Mapping) and isinstance(entry.get("value"), str):
            data[key] = {**entry, "value": entry["value"].upper()}
    return data


class GatewayBackend:
    """Calls a vision model with a JSON-object response format."""

    name = "gateway"

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = client
        self._system_prompt = build_system_prompt()

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.settings.gateway_api_key:
                raise BackendFailure("GATEWAY_API_KEY is not configured")
            self._client = AsyncOpenAI(
                api_key=self.settings.gateway_api_key,
                base_url=str(self.settings.gateway_base_url),
                max_retries=0,
            )
        return self._client

    def model_for(self, tier: ModelTier) -> str:
        if tier == "backup":
            return self.settings.extraction_backup_model
        return self.settings.extraction_primary_model

    def build_messages(self, image_base64: str) -> list[dict[str, Any]]:
        image_url = image_base64 if image_base64.startswith("data:") else f"data:image/png;base64,{image_base64}"
        return [
            {"role": "system", "content": self._system_prompt},
            {
                "role": "user",
                "content": [
                    {
                        "type": "text",
                        "text": "Analise este print de boletim de aposta e retorne APENAS o JSON.",
                    },
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            },
        ]

    async def parse(self, image_base64: str, *, model: ModelTier = "primary") -> BackendResponse:
        client = self._get_client()
        model_name = self.model_for(model)
        try:
            completion = await client.chat.completions.create(
                model=model_name,
                messages=self.build_messages(image_base64),
                response_format={"type": "json_object"},
            )
        except APITimeoutError as exc:
            raise TimeoutError(f"Gateway timed out for model {model_name}") from exc
        except APIStatusError as exc:
            logger.warning("AI gateway error model={} {}", model_name, exception_summary(exc))
            return error_response(exc.status_code, exception_summary(exc))
        except APIConnectionError as exc:
            raise BackendFailure(exception_summary(exc)) from exc

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            return BackendResponse(success=False, error="No response from AI")
        try:
            payload = json.loads(content)
        except json.JSONDecodeError:
            logger.warning("AI gateway returned non-JSON content for model={}", model_name)
            return BackendResponse(success=False, error="AI response was not valid JSON")
        if not isinstance(payload, Mapping):
            return BackendResponse(success=False, error="AI response was not a JSON object")
        try:
            data = RawSlip.model_validate(_uppercase_teams(payload))
        except ValidationError as exc:
            return BackendResponse(success=False, error=f"AI response did not match the slip schema: {exc}")
        return BackendResponse(success=True, data=data)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()


__all__ = ["GatewayBackend", "build_system_prompt"]
