import pytest_asyncio

SIGNUP = {"username": "alice", "password": "Valid123", "name": "Alice", "email": "alice@example.com"}


async def signup(client, **overrides):
    return await client.post("/auth/signup", json={**SIGNUP, **overrides})


# ------ Auth -----

async def test_signup_created(client):
    res = await signup(client)
    assert res.status_code == 201
    body = res.json()
    assert set(body) == {"user", "token", "expiresIn"}
    assert body["user"]["username"] == "alice"
    assert "password_hash" not in body["user"]
    assert "passwordHash" not in body["user"]
    assert body["expiresIn"] == 2592000000


async def test_signup_validation_error(client):
    res = await signup(client, password="short1A")
    assert res.status_code == 400
    assert res.json() == {"error": "Password must be at least 8 characters"}

    res = await client.post("/auth/signup", json={"username": "alice"})
    assert res.status_code == 400
    assert res.json() == {"error": "Missing required fields"}


async def test_signup_conflict_is_case_insensitive(client):
    assert (await signup(client, username="Alice")).status_code == 201
    res = await signup(client, username="alice", email="b@example.com")
    assert res.status_code == 409
    assert res.json() == {"error": "Username already exists"}


async def test_malformed_body_is_400(client):
    res = await client.post("/auth/signup", json={**SIGNUP, "username": ["not", "a", "string"]})
    assert res.status_code == 400
    assert res.json() == {"error": "Invalid request body"}

    res = await client.post("/auth/login", content=b"not json", headers={"content-type": "application/json"})
    assert res.status_code == 400


async def test_login_flow(client):
    await signup(client)
    res = await client.post("/auth/login", json={"username": "alice", "password": "Valid123"})
    assert res.status_code == 200
    assert res.json()["user"]["name"] == "Alice"
    assert len(res.json()["token"]) == 64


async def test_login_errors_do_not_enumerate_users(client):
    await signup(client)
    wrong = await client.post("/auth/login", json={"username": "alice", "password": "Wrong1234"})
    unknown = await client.post("/auth/login", json={"username": "ghost", "password": "Valid123"})

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json() == {"error": "Invalid credentials"}


async def test_login_missing_fields(client):
    res = await client.post("/auth/login", json={"username": "alice"})
    assert res.status_code == 400
    assert res.json() == {"error": "Missing username or password"}


async def test_login_rate_limited(client):
    for _ in range(5):
        res = await client.post("/auth/login", json={"username": "alice", "password": "Wrong1234"})
        assert res.status_code == 401
    res = await client.post("/auth/login", json={"username": "alice", "password": "Wrong1234"})
    assert res.status_code == 429
    assert res.json() == {"error": "Too many login attempts. Please try again later."}


async def test_verify_and_logout(client):
    user = (await signup(client)).json()["user"]

    res = await client.post("/auth/verify", json={"userId": user["id"]})
    assert res.status_code == 200
    assert res.json() == {"user": user}

    res = await client.post("/auth/verify", json={"userId": "ghost"})
    assert res.status_code == 401
    assert res.json() == {"error": "User not found"}

    res = await client.post("/auth/verify", json={})
    assert res.status_code == 400

    res = await client.post("/auth/logout", json={"userId": user["id"]})
    assert res.status_code == 200
    assert res.json() == {"success": True}

    res = await client.post("/auth/logout", json={})
    assert res.status_code == 400
    assert res.json() == {"error": "Missing userId"}


# ------ History -----

@pytest_asyncio.fixture
async def user_id(client):
    return (await signup(client)).json()["user"]["id"]


async def test_session_lifecycle(client, user_id):
    res = await client.post("/history/session", json={"userId": user_id})
    assert res.status_code == 201
    session = res.json()["session"]
    assert session["title"] == "New Consultation"
    assert session["messages"] == []

    res = await client.post("/history/message", json={
        "sessionId": session["id"],
        "role": "user",
        "content": "I have a fever",
        "extractedSymptoms": ["fever", "cough"],
        "messageId": "m1",
    })
    assert res.status_code == 201
    message = res.json()["message"]
    assert message["id"] == "m1"
    assert message["extracted_symptoms"] == ["fever", "cough"]

    res = await client.put(f"/history/session/{session['id']}", json={"title": "Fever"})
    assert res.json() == {"success": True}

    res = await client.get(f"/history/session/{session['id']}")
    assert res.status_code == 200
    body = res.json()
    assert body["session"]["title"] == "Fever"
    assert body["messages"][0]["extracted_symptoms"] == ["fever", "cough"]

    res = await client.get(f"/history/sessions/{user_id}")
    sessions = res.json()["sessions"]
    assert len(sessions) == 1
    assert sessions[0]["messages"][0]["content"] == "I have a fever"

    res = await client.delete(f"/history/session/{session['id']}")
    assert res.json() == {"success": True}
    res = await client.get(f"/history/session/{session['id']}")
    assert res.status_code == 404
    assert res.json() == {"error": "Session not found"}


async def test_message_upsert_over_http(client, user_id):
    session = (await client.post("/history/session", json={"userId": user_id, "title": "T"})).json()["session"]
    payload = {"sessionId": session["id"], "role": "assistant", "content": "draft", "messageId": "m1"}

    await client.post("/history/message", json=payload)
    await client.post("/history/message", json={**payload, "content": "final"})

    messages = (await client.get(f"/history/session/{session['id']}")).json()["messages"]
    assert [(m["id"], m["content"]) for m in messages] == [("m1", "final")]


async def test_history_validation_errors(client):
    res = await client.post("/history/session", json={})
    assert res.status_code == 400
    assert res.json() == {"error": "Missing userId"}

    res = await client.post("/history/message", json={"sessionId": "s", "role": "user"})
    assert res.status_code == 400
    assert res.json() == {"error": "Missing required fields"}

    res = await client.put("/history/session/s", json={})
    assert res.status_code == 400
    assert res.json() == {"error": "Missing title"}


async def test_clear_user_data(client, user_id):
    for _ in range(2):
        await client.post("/history/session", json={"userId": user_id})

    res = await client.delete(f"/history/user/{user_id}")
    assert res.json() == {"success": True}
    res = await client.get(f"/history/sessions/{user_id}")
    assert res.json() == {"sessions": []}


async def test_corrupt_data_yields_generic_500(client, user_id, db):
    session = (await client.post("/history/session", json={"userId": user_id})).json()["session"]
    await client.post("/history/message", json={"sessionId": session["id"], "role": "user", "content": "x", "messageId": "m1"})
    await db.execute("UPDATE messages SET grounding_sources = '[oops' WHERE id = 'm1'")

    res = await client.get(f"/history/session/{session['id']}")
    assert res.status_code == 500
    assert res.json() == {"error": "Internal server error"}


async def test_dangling_references_are_client_errors(client):
    res = await client.post("/history/session", json={"userId": "no-such-user"})
    assert res.status_code == 400
    assert res.json() == {"error": "Unknown userId"}

    res = await client.post("/history/message", json={"sessionId": "no-such-session", "role": "user", "content": "x"})
    assert res.status_code == 404
    assert res.json() == {"error": "Session not found"}
