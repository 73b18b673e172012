from chatbridge.models import Message, Notification
from chatbridge.services.conversation_service import SENDER_USER, get_conversation, record_message
from chatbridge.services.notification_service import create_notification
from chatbridge.services.settings_service import DEFAULT_PERSONALITY_PROMPT
from chatbridge.services.state_service import escalate, mark_identified
from chatbridge.services.transport import TransportError

CHAT = "50499990000@c.us"


class TestChatbotSettings:
    def test_defaults(self, client):
        response = client.get("/api/crm/chatbot-settings")

        assert response.status_code == 200
        assert response.json()["personality_prompt"] == DEFAULT_PERSONALITY_PROMPT

    def test_save_and_read_back(self, client):
        response = client.post(
            "/api/crm/chatbot-settings", json={"model": "gpt-4.1", "personality_prompt": "Sé breve."}
        )
        assert response.status_code == 200
        assert response.json()["success"] is True

        assert client.get("/api/crm/chatbot-settings").json() == {"model": "gpt-4.1", "personality_prompt": "Sé breve."}

    def test_empty_prompt_rejected(self, client):
        response = client.post("/api/crm/chatbot-settings", json={"model": "gpt-4.1", "personality_prompt": ""})
        assert response.status_code == 422


class TestConversations:
    def test_list_and_detail(self, client, db):
        record_message(db, CHAT, SENDER_USER, "Hola", 1000, contact_name="Ana")
        db.commit()

        chats = client.get("/api/crm/chats").json()
        assert chats[0]["id"] == CHAT
        assert chats[0]["name"] == "Ana"
        assert chats[0]["lastMessage"] == "Hola"
        assert chats[0]["bot_active"] is True

        detail = client.get(f"/api/crm/conversations/{CHAT}").json()
        assert [m["body"] for m in detail["messages"]] == ["Hola"]
        assert detail["status"] == "new_visitor"

    def test_detail_of_unknown_chat(self, client):
        detail = client.get("/api/crm/conversations/000@c.us").json()

        assert detail["messages"] == []
        assert detail["bot_active"] is True


class TestSendMessage:
    def test_sends_archives_and_fans_out(self, client, db, transport, hub, timers):
        response = client.post("/api/crm/send-message", json={"chatId": "504 9999 0000", "message": "Te llamamos mañana"})

        assert response.status_code == 200
        assert transport.sent == [(CHAT, "Te llamamos mañana")]
        message = db.query(Message).one()
        assert message.from_me is True
        assert message.sender == "me"
        assert message.external_id == "wamid-1"
        assert hub.notify.call_args[0][0]["type"] == "new_message"
        timers.touch.assert_called_once_with(CHAT)

    def test_transport_not_ready(self, client, db, transport):
        transport.ready = False

        response = client.post("/api/crm/send-message", json={"chatId": CHAT, "message": "Hola"})

        assert response.status_code == 503
        assert db.query(Message).count() == 0

    def test_transport_failure(self, client, db, transport):
        transport.error = TransportError("Transport responded 500")

        response = client.post("/api/crm/send-message", json={"chatId": CHAT, "message": "Hola"})

        assert response.status_code == 502
        assert db.query(Message).count() == 0


class TestBotToggle:
    def test_disable_untracked_chat(self, client, db):
        response = client.post(f"/api/crm/chats/{CHAT}/disable_bot")

        assert response.status_code == 200
        assert get_conversation(db, CHAT).bot_active is False

    def test_enable_clears_escalation_and_keeps_identity(self, client, db):
        mark_identified(db, CHAT, "0801199912345")
        escalate(db, get_conversation(db, CHAT))
        db.commit()

        client.post(f"/api/crm/chats/{CHAT}/enable_bot")

        db.expire_all()
        conversation = get_conversation(db, CHAT)
        assert conversation.bot_active is True
        assert conversation.status == "identified_affiliate"
        assert conversation.known_identity == "0801199912345"


class TestTags:
    def test_create_attach_detach(self, client, db):
        created = client.post("/api/crm/tags", json={"name": "Urgente", "color": "#ff0000"})
        assert created.status_code == 201
        tag_id = created.json()["id"]

        assert client.post(f"/api/crm/chats/{CHAT}/tags", json={"tag_id": tag_id}).json()["message"] == "Etiqueta asignada."
        again = client.post(f"/api/crm/chats/{CHAT}/tags", json={"tag_id": tag_id})
        assert again.json()["message"] == "La etiqueta ya estaba asignada."

        chats = client.get("/api/crm/chats").json()
        assert chats[0]["tags"] == [{"id": tag_id, "name": "Urgente", "color": "#ff0000"}]

        assert client.delete(f"/api/crm/chats/{CHAT}/tags/{tag_id}").status_code == 200
        assert client.get(f"/api/crm/conversations/{CHAT}").json()["tags"] == []

    def test_duplicate_name(self, client):
        client.post("/api/crm/tags", json={"name": "VIP"})

        response = client.post("/api/crm/tags", json={"name": "VIP"})

        assert response.status_code == 409

    def test_default_color(self, client):
        assert client.post("/api/crm/tags", json={"name": "Seguimiento"}).json()["color"] == "#808080"

    def test_unknown_tag(self, client):
        assert client.post(f"/api/crm/chats/{CHAT}/tags", json={"tag_id": 999}).status_code == 404
        assert client.delete(f"/api/crm/chats/{CHAT}/tags/999").status_code == 404


class TestNotifications:
    def test_list_unread_newest_first_and_mark_read(self, client, db):
        older = create_notification(db, CHAT, "negative", "Molesto", "Ana", timestamp=1000)
        create_notification(db, CHAT, "urgent", "Urgente", "Ana", timestamp=2000)
        db.commit()

        listed = client.get("/api/crm/notifications").json()
        assert [n["type"] for n in listed] == ["urgent", "negative"]

        response = client.post(f"/api/crm/notifications/{older.id}/read")
        assert response.status_code == 200
        assert response.json()["is_read"] is True

        assert [n["type"] for n in client.get("/api/crm/notifications").json()] == ["urgent"]

    def test_mark_unknown_notification(self, client, db):
        assert client.post("/api/crm/notifications/999/read").status_code == 404
        assert db.query(Notification).count() == 0
