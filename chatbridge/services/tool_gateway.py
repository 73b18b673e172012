"""Bridge between model-issued tool calls and the CRM bot-tools API.

Every tool is a GET against ``CRM_API_URL`` carrying the shared service key.
Backend failures never propagate: they come back as ``{"error": reason}`` so
the model can be told the lookup failed. An unknown tool name is a programming
error and raises ``UnknownToolError`` before any request is made.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx

from chatbridge.config import settings
from chatbridge.logging_config import get_logger

logger = get_logger("tool_gateway")

SEARCH_VACANCIES = "search_vacancies_tool"
VALIDATE_REGISTRATION = "validate_registration_tool"
LIST_ALL_VACANCIES = "get_all_active_vacancies"
VACANCY_DETAILS = "get_vacancy_details_tool"
CANDIDATE_STATUS = "get_candidate_status_tool"

TOOL_ENDPOINTS = {
    SEARCH_VACANCIES: "/api/bot_tools/vacancies",
    VALIDATE_REGISTRATION: "/api/bot_tools/validate_registration",
    LIST_ALL_VACANCIES: "/api/bot_tools/all_active_vacancies",
    VACANCY_DETAILS: "/api/bot_tools/vacancy_details",
    CANDIDATE_STATUS: "/api/bot_tools/candidate_status",
}

IDENTITY_TOOLS = {VALIDATE_REGISTRATION, CANDIDATE_STATUS}

# Flags a backend uses to say "this identity is not one of ours".
_NEGATIVE_FLAGS = ("success", "registered", "found", "valid")

TOOL_CATALOGUE = [
    {
        "type": "function",
        "function": {
            "name": SEARCH_VACANCIES,
            "description": "Busca vacantes de empleo disponibles en el CRM por ciudad y/o palabra clave.",
            "parameters": {
                "type": "object",
                "properties": {
                    "city": {"type": "string", "description": "Ciudad donde busca empleo"},
                    "keyword": {"type": "string", "description": "Puesto, área o palabra clave"},
                },
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": VALIDATE_REGISTRATION,
            "description": "Verifica en el CRM si un candidato se ha registrado usando su número de identidad.",
            "parameters": {
                "type": "object",
                "properties": {"identity": {"type": "string", "description": "Número de identidad, solo dígitos"}},
                "required": ["identity"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": LIST_ALL_VACANCIES,
            "description": "Devuelve el catálogo completo de vacantes activas.",
            "parameters": {"type": "object", "properties": {}},
        },
    },
    {
        "type": "function",
        "function": {
            "name": VACANCY_DETAILS,
            "description": "Obtiene los detalles completos (requisitos, salario, proceso) de una vacante concreta.",
            "parameters": {
                "type": "object",
                "properties": {"vacancy_name": {"type": "string", "description": "Nombre del cargo de la vacante"}},
                "required": ["vacancy_name"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": CANDIDATE_STATUS,
            "description": "Consulta el estado de las postulaciones de un candidato afiliado por su número de identidad.",
            "parameters": {
                "type": "object",
                "properties": {"identity": {"type": "string", "description": "Número de identidad, solo dígitos"}},
                "required": ["identity"],
            },
        },
    },
]


class UnknownToolError(Exception):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class ToolOutcomeKind(str, Enum):
    ORDINARY = "ordinary"
    EMPTY = "empty"
    IDENTITY_CONFIRMED = "identity_confirmed"
    ERROR = "error"


@dataclass
class ToolOutcome:
    kind: ToolOutcomeKind
    payload: Any
    identity: Optional[str] = None


def _items(payload: Any) -> Optional[list]:
    """The record list inside a payload, or None when the payload is not a collection."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("results", "vacancies", "data", "items"):
            if isinstance(payload.get(key), list):
                return payload[key]
    return None


def is_error_payload(payload: Any) -> bool:
    return isinstance(payload, dict) and "error" in payload


def is_empty_payload(payload: Any) -> bool:
    if payload is None:
        return True
    items = _items(payload)
    return items is not None and len(items) == 0


def classify_tool_result(name: str, arguments: dict, payload: Any) -> ToolOutcome:
    """Tag a tool result so the orchestrator can act on it uniformly."""
    if is_error_payload(payload):
        return ToolOutcome(ToolOutcomeKind.ERROR, payload)

    if is_empty_payload(payload):
        return ToolOutcome(ToolOutcomeKind.EMPTY, payload)

    if name in IDENTITY_TOOLS:
        record = payload
        if isinstance(payload, list):
            record = payload[0] if isinstance(payload[0], dict) else {}
        if isinstance(record, dict) and record and not any(record.get(flag) is False for flag in _NEGATIVE_FLAGS):
            identity = record.get("identity") or record.get("identidad") or (arguments or {}).get("identity")
            if identity:
                return ToolOutcome(ToolOutcomeKind.IDENTITY_CONFIRMED, payload, identity=str(identity))

    return ToolOutcome(ToolOutcomeKind.ORDINARY, payload)


class ToolGateway:
    """Resolves a tool name to its CRM endpoint and performs the lookup."""

    def __init__(self, base_url: str, api_key: Optional[str], timeout_seconds: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    def endpoint_for(self, name: str) -> str:
        endpoint = TOOL_ENDPOINTS.get(name)
        if not endpoint:
            raise UnknownToolError(name)
        return f"{self.base_url}{endpoint}"

    def call(self, name: str, arguments: Optional[dict] = None) -> Any:
        """Run one tool. Returns the backend JSON, or {"error": reason} on any backend failure."""
        url = self.endpoint_for(name)
        params = {k: v for k, v in (arguments or {}).items() if v is not None and v != ""}
        headers = {"X-API-Key": self.api_key} if self.api_key else {}

        logger.info("Calling CRM tool", extra={"context": {"tool": name, "url": url, "params": params}})

        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"CRM tool {name} unreachable: {e}")
            return {"error": f"No se pudo contactar al CRM: {e.__class__.__name__}"}

        if response.status_code >= 400:
            logger.error(f"CRM API error ({response.status_code}) for {name}: {response.text[:300]}")
            return {"error": f"Error en API CRM: {response.status_code}"}

        try:
            data = response.json()
        except ValueError:
            logger.error(f"CRM tool {name} returned non-JSON body: {response.text[:300]}")
            return {"error": "Respuesta inválida del CRM"}

        items = _items(data)
        logger.info(
            "CRM tool result",
            extra={"context": {"tool": name, "records": len(items) if items is not None else 1}},
        )
        return data


_gateway: Optional[ToolGateway] = None


def get_tool_gateway() -> ToolGateway:
    global _gateway
    if _gateway is None:
        _gateway = ToolGateway(
            base_url=settings.crm_api_url,
            api_key=settings.crm_internal_api_key,
            timeout_seconds=settings.tool_timeout_seconds,
        )
    return _gateway
