from chatbridge.services.conversation_service import SENDER_USER, record_message


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "whatsapp": "Conectado"}


def test_db_check_counts_rows(client, db):
    record_message(db, "50499990000@c.us", SENDER_USER, "Hola", 1000)
    db.commit()

    data = client.get("/db-check").json()

    assert data == {"status": "ok", "conversations": 1, "messages": 1, "notifications": 0}
