import json
from unittest.mock import Mock

import pytest

from chatbridge.models import Message
from chatbridge.services.conversation_service import SENDER_ME, SENDER_USER, get_conversation, record_message
from chatbridge.services.dialogue_service import (
    APOLOGY_REPLY,
    EMPTY_CATALOGUE_REPLY,
    FALLBACK_DISCLAIMER,
    DialogueOrchestrator,
    is_media_placeholder,
)
from chatbridge.services.llm import LLMError
from chatbridge.services.state_service import disable_bot, escalate, mark_identified
from chatbridge.services.tool_gateway import (
    LIST_ALL_VACANCIES,
    SEARCH_VACANCIES,
    VALIDATE_REGISTRATION,
    UnknownToolError,
)
from tests.fakes import FakeGateway, FakeLLM, text_response, tool_response

SENDER = "+504 9999-0000"
CHAT = "50499990000@c.us"


def _bodies(db):
    return [(m.sender, m.body) for m in db.query(Message).order_by(Message.id).all()]


class TestMediaPlaceholders:
    @pytest.mark.parametrize("text", ["<Media omitted>", "imagen omitida", "<attached: 00000012-PHOTO.jpg>"])
    def test_placeholders_detected(self, text):
        assert is_media_placeholder(text) is True

    def test_regular_text_passes(self):
        assert is_media_placeholder("Busco empleo de cajero") is False


class TestSimpleTurn:
    def test_new_visitor_gets_reply_and_both_messages_are_archived(self, db):
        llm = FakeLLM([text_response("¡Hola! Soy HenmirBot.")])
        orchestrator = DialogueOrchestrator(llm, FakeGateway())

        result = orchestrator.handle_inbound(db, SENDER, "Hola")

        assert result.reply == "¡Hola! Soy HenmirBot."
        assert result.chat_id == CHAT
        assert _bodies(db) == [(SENDER_USER, "Hola"), (SENDER_ME, "¡Hola! Soy HenmirBot.")]
        assert len(result.messages) == 2

        system = json.loads(llm.calls[0]["messages"][0]["content"])
        assert "REGLAS_CRITICAS" in system
        assert "IDENTIDAD_CONFIRMADA" not in system["CONTEXTO"]
        assert llm.calls[0]["tools"]

    def test_history_precedes_new_message(self, db):
        record_message(db, CHAT, SENDER_USER, "Hola", 1000)
        record_message(db, CHAT, SENDER_ME, "¿En qué te ayudo?", 1001)
        db.commit()
        llm = FakeLLM([text_response("Claro")])

        DialogueOrchestrator(llm, FakeGateway()).handle_inbound(db, SENDER, "Busco empleo")

        roles = [(m["role"], m["content"]) for m in llm.calls[0]["messages"][1:]]
        assert roles == [
            ("user", "Hola"),
            ("assistant", "¿En qué te ayudo?"),
            ("user", "Busco empleo"),
        ]

    def test_operator_model_setting_is_used(self, db):
        from chatbridge.services.settings_service import save_bot_settings

        save_bot_settings(db, "gpt-4.1", "Eres un asistente")
        db.commit()
        llm = FakeLLM([text_response("ok")])

        DialogueOrchestrator(llm, FakeGateway()).handle_inbound(db, SENDER, "Hola")

        assert llm.calls[0]["model"] == "gpt-4.1"
        assert json.loads(llm.calls[0]["messages"][0]["content"])["MISIÓN_Y_PERSONALIDAD"] == "Eres un asistente"


class TestGate:
    @pytest.mark.parametrize("text", ["", "   ", "<Multimedia omitido>"])
    def test_empty_or_media_writes_nothing(self, db, text):
        llm = FakeLLM()

        result = DialogueOrchestrator(llm, FakeGateway()).handle_inbound(db, SENDER, text)

        assert result.reply == ""
        assert llm.calls == []
        assert db.query(Message).count() == 0
        assert get_conversation(db, CHAT) is None

    def test_disabled_bot_archives_without_calling_model(self, db):
        disable_bot(db, CHAT)
        db.commit()
        llm = FakeLLM()

        result = DialogueOrchestrator(llm, FakeGateway()).handle_inbound(db, SENDER, "¿Hay alguien?")

        assert result.reply == ""
        assert llm.calls == []
        assert _bodies(db) == [(SENDER_USER, "¿Hay alguien?")]

    def test_escalated_chat_stays_silent(self, db):
        mark_identified(db, CHAT, "0801199912345")
        escalate(db, get_conversation(db, CHAT))
        db.commit()
        llm = FakeLLM()

        result = DialogueOrchestrator(llm, FakeGateway()).handle_inbound(db, SENDER, "Hola")

        assert result.reply == ""
        assert llm.calls == []

    def test_reply_dropped_when_operator_takes_over_mid_turn(self, db):
        class TakeoverLLM(FakeLLM):
            def generate(self, messages, **kwargs):
                disable_bot(db, CHAT)
                db.commit()
                return super().generate(messages, **kwargs)

        llm = TakeoverLLM([text_response("respuesta tardía")])

        result = DialogueOrchestrator(llm, FakeGateway()).handle_inbound(db, SENDER, "Hola")

        assert result.reply == ""
        assert _bodies(db) == [(SENDER_USER, "Hola")]


class TestIdentityCapture:
    def test_validated_identity_promotes_new_visitor(self, db):
        llm = FakeLLM(
            [
                tool_response((VALIDATE_REGISTRATION, {"identity": "0801199912345"})),
                text_response("¡Gracias Ana, ya estás registrada!"),
            ]
        )
        gateway = FakeGateway({VALIDATE_REGISTRATION: {"success": True, "nombre": "Ana"}})

        result = DialogueOrchestrator(llm, gateway).handle_inbound(db, SENDER, "Ya me registré, 0801199912345")

        conversation = get_conversation(db, CHAT)
        assert conversation.status == "identified_affiliate"
        assert conversation.known_identity == "0801199912345"
        assert result.reply == "¡Gracias Ana, ya estás registrada!"
        assert result.tools_called == [VALIDATE_REGISTRATION]

        second = llm.calls[1]
        assert second["tools"] is None
        tool_message = second["messages"][-1]
        assert tool_message["role"] == "tool"
        assert tool_message["tool_call_id"] == "call_0"
        assert json.loads(tool_message["content"]) == {"success": True, "nombre": "Ana"}

    def test_failed_validation_keeps_new_visitor(self, db):
        llm = FakeLLM(
            [
                tool_response((VALIDATE_REGISTRATION, {"identity": "111"})),
                text_response("No encuentro tu registro."),
            ]
        )
        gateway = FakeGateway({VALIDATE_REGISTRATION: {"error": "Error en API CRM: 500"}})

        result = DialogueOrchestrator(llm, gateway).handle_inbound(db, SENDER, "Mi identidad es 111")

        assert result.reply == "No encuentro tu registro."
        conversation = get_conversation(db, CHAT)
        assert conversation.status == "new_visitor"
        assert conversation.known_identity is None

    def test_affiliate_prompt_carries_identity(self, db):
        mark_identified(db, CHAT, "0801199912345")
        db.commit()
        llm = FakeLLM([text_response("Tu postulación está en revisión.")])

        DialogueOrchestrator(llm, FakeGateway()).handle_inbound(db, SENDER, "¿Cómo va mi postulación?")

        system = json.loads(llm.calls[0]["messages"][0]["content"])
        assert system["CONTEXTO"]["IDENTIDAD_CONFIRMADA"] == "0801199912345"
        assert "0801199912345" in system["CONTEXTO"]["HECHO_OBLIGATORIO"]


class TestVacancyFallback:
    def test_empty_search_falls_back_to_catalogue(self, db):
        catalogue = [{"cargo": "Cajero"}, {"cargo": "Bodeguero"}]
        llm = FakeLLM(
            [
                tool_response((SEARCH_VACANCIES, {"keyword": "astronauta"})),
                text_response("- Cajero\n- Bodeguero"),
            ]
        )
        gateway = FakeGateway({SEARCH_VACANCIES: [], LIST_ALL_VACANCIES: catalogue})

        result = DialogueOrchestrator(llm, gateway).handle_inbound(db, SENDER, "Busco trabajo de astronauta")

        assert result.reply.startswith(FALLBACK_DISCLAIMER)
        assert "Cajero" in result.reply
        assert [name for name, _ in gateway.calls] == [SEARCH_VACANCIES, LIST_ALL_VACANCIES]
        instruction = llm.calls[1]["messages"][-1]
        assert instruction["role"] == "system"
        assert "Bodeguero" in instruction["content"]

    def test_disclaimer_not_duplicated(self, db):
        llm = FakeLLM(
            [
                tool_response((SEARCH_VACANCIES, {"keyword": "piloto"})),
                text_response(f"{FALLBACK_DISCLAIMER}\n- Cajero"),
            ]
        )
        gateway = FakeGateway({SEARCH_VACANCIES: [], LIST_ALL_VACANCIES: [{"cargo": "Cajero"}]})

        result = DialogueOrchestrator(llm, gateway).handle_inbound(db, SENDER, "Busco trabajo de piloto")

        assert result.reply.count(FALLBACK_DISCLAIMER) == 1

    def test_empty_catalogue_short_circuits(self, db):
        llm = FakeLLM([tool_response((SEARCH_VACANCIES, {"keyword": "piloto"}))])
        gateway = FakeGateway({SEARCH_VACANCIES: [], LIST_ALL_VACANCIES: []})

        result = DialogueOrchestrator(llm, gateway).handle_inbound(db, SENDER, "Busco trabajo de piloto")

        assert result.reply == EMPTY_CATALOGUE_REPLY
        assert len(llm.calls) == 1
        assert _bodies(db)[-1] == (SENDER_ME, EMPTY_CATALOGUE_REPLY)

    def test_catalogue_failure_is_passed_to_model(self, db):
        llm = FakeLLM(
            [
                tool_response((SEARCH_VACANCIES, {"keyword": "piloto"})),
                text_response("No pude consultar el catálogo ahora, intenta más tarde."),
            ]
        )
        gateway = FakeGateway({SEARCH_VACANCIES: [], LIST_ALL_VACANCIES: {"error": "Error en API CRM: 500"}})

        result = DialogueOrchestrator(llm, gateway).handle_inbound(db, SENDER, "Busco trabajo de piloto")

        assert result.reply == "No pude consultar el catálogo ahora, intenta más tarde."
        assert result.reply != EMPTY_CATALOGUE_REPLY
        assert len(llm.calls) == 2
        instruction = llm.calls[1]["messages"][-1]
        assert instruction["role"] == "system"
        assert "Error en API CRM: 500" in instruction["content"]
        assert not result.reply.startswith(FALLBACK_DISCLAIMER)

    def test_non_empty_search_skips_fallback(self, db):
        llm = FakeLLM(
            [
                tool_response((SEARCH_VACANCIES, {"city": "SPS"})),
                text_response("- Cajero en SPS"),
            ]
        )
        gateway = FakeGateway({SEARCH_VACANCIES: [{"cargo": "Cajero", "ciudad": "SPS"}]})

        result = DialogueOrchestrator(llm, gateway).handle_inbound(db, SENDER, "Empleo en SPS")

        assert result.reply == "- Cajero en SPS"
        assert [name for name, _ in gateway.calls] == [SEARCH_VACANCIES]


class TestFailures:
    def test_model_failure_becomes_apology(self, db):
        llm = FakeLLM([LLMError("OpenAI API error: 500")])

        result = DialogueOrchestrator(llm, FakeGateway()).handle_inbound(db, SENDER, "Hola")

        assert result.reply == APOLOGY_REPLY
        assert _bodies(db) == [(SENDER_USER, "Hola")]

    def test_sender_without_digits_is_rejected(self, db):
        with pytest.raises(ValueError):
            DialogueOrchestrator(FakeLLM(), FakeGateway()).handle_inbound(db, "WhatsAuto", "Hola")

    def test_unknown_tool_aborts_turn_with_apology(self, db):
        llm = FakeLLM([tool_response(("delete_everything", {}))])
        gateway = FakeGateway()
        gateway.call = Mock(side_effect=UnknownToolError("delete_everything"))

        result = DialogueOrchestrator(llm, gateway).handle_inbound(db, SENDER, "Hola")

        assert result.reply == APOLOGY_REPLY
        assert len(llm.calls) == 1
        assert _bodies(db) == [(SENDER_USER, "Hola")]
