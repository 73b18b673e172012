import json
from typing import Optional

from chatbridge.services.state_machine import ConversationStatus

CRITICAL_RULES = {
    "RENDERIZADO_URL": (
        "Cualquier texto que empiece con http:// o https:// es una URL y NUNCA debe ser alterado "
        "o formateado como un enlace Markdown. Muestra siempre la URL completa."
    ),
    "FIDELIDAD_DATOS": (
        "Al mostrar datos de herramientas (como vacantes), debes presentar la información EXACTAMENTE "
        "como la recibes. NO inventes, resumas o alteres los datos."
    ),
}

FORMAT_RULES = (
    "Usa negritas (**) para resaltar y listas con viñetas (-, *) para enumerar elementos. "
    "Separa párrafos para facilitar la lectura."
)

NEW_VISITOR_CONTEXT = {
    "ESTADO_DEL_USUARIO": "Visitante nuevo, todavía no verificado.",
    "OBJETIVO": (
        "Responde dudas sobre vacantes y guía al usuario para que se registre como candidato. "
        "Si el usuario dice que ya se registró, pídele su número de identidad y verifícalo con "
        "validate_registration_tool antes de darle información de seguimiento."
    ),
}

AFFILIATE_CONTEXT_TEMPLATE = {
    "ESTADO_DEL_USUARIO": "Afiliado verificado.",
    "IDENTIDAD_CONFIRMADA": "{identity}",
    "HECHO_OBLIGATORIO": (
        "El número de identidad de este usuario ya está verificado: {identity}. "
        "NUNCA vuelvas a pedirlo. Úsalo directamente en get_candidate_status_tool cuando pregunte por sus postulaciones."
    ),
    "OBJETIVO": "Ayuda al afiliado con vacantes, detalles de puestos y el estado de sus postulaciones.",
}

FALLBACK_INSTRUCTION = (
    "La búsqueda específica no devolvió vacantes. Este es el catálogo COMPLETO de vacantes activas:\n"
    "{catalogue}\n\n"
    "Sugiere como máximo {max_suggestions} vacantes de este catálogo que sean semánticamente más cercanas "
    "a lo que el usuario busca. Usa solo vacantes del catálogo, copiando sus datos exactamente. "
    'Empieza tu respuesta con esta frase exacta: "{disclaimer}"'
)

CATALOGUE_ERROR_INSTRUCTION = (
    "La búsqueda específica no devolvió vacantes y la consulta del catálogo completo falló:\n"
    "{error}\n\n"
    "No afirmes que no hay vacantes. Explica que no pudiste consultar el catálogo en este momento "
    "e invita al usuario a intentarlo de nuevo más tarde."
)

ANALYSIS_INSTRUCTION = (
    "Eres un analista de calidad de conversaciones de una agencia de empleos. Lee la conversación "
    "entre un usuario y el asistente y devuelve EXACTAMENTE un objeto JSON, sin texto adicional, "
    "con estas claves:\n"
    '- "sentiment": "positive", "negative" o "neutral" (estado de ánimo del usuario)\n'
    '- "urgency": "high", "medium" o "low"\n'
    '- "incongruent": true si el usuario parece confundido, contradictorio o si el asistente '
    "respondió algo que no corresponde; false en caso contrario\n"
    '- "summary": resumen de una o dos frases en español'
)


def build_system_prompt(personality_prompt: str, status: Optional[str], known_identity: Optional[str]) -> str:
    """Master prompt for the primary model; the context block depends on the conversation status."""
    if status == ConversationStatus.IDENTIFIED_AFFILIATE.value and known_identity:
        context = {key: value.format(identity=known_identity) for key, value in AFFILIATE_CONTEXT_TEMPLATE.items()}
    else:
        context = NEW_VISITOR_CONTEXT

    prompt = {
        "REGLAS_CRITICAS": CRITICAL_RULES,
        "MISIÓN_Y_PERSONALIDAD": personality_prompt,
        "CONTEXTO": context,
        "REGLAS_DE_FORMATO": FORMAT_RULES,
    }
    return json.dumps(prompt, ensure_ascii=False)


def build_fallback_instruction(catalogue_json: str, disclaimer: str, max_suggestions: int) -> str:
    return FALLBACK_INSTRUCTION.format(
        catalogue=catalogue_json,
        max_suggestions=max_suggestions,
        disclaimer=disclaimer,
    )


def format_transcript(history: list[dict]) -> str:
    lines = []
    for item in history:
        speaker = "Asistente" if item["role"] == "assistant" else "Usuario"
        lines.append(f"{speaker}: {item['content']}")
    return "\n".join(lines)


def build_catalogue_error_instruction(error_json: str) -> str:
    return CATALOGUE_ERROR_INSTRUCTION.format(error=error_json)
