"""
HTTP-level tests for the login flow: login redirect, callback handling,
the route gate, logout and health.
"""

import asyncio

from kinde_portal.auth.middleware import AuthenticatedSession

from conftest import CLIENT_ID, DOMAIN, query_of

COOKIE = "kinde_session"


def stored_session(app, web):
    session_id = web.cookies.get(COOKIE)
    return asyncio.run(app.state.session_manager.get_session(session_id))


def begin_login(web, fake_kinde, path="/auth/login"):
    r = web.get(path)
    assert r.status_code == 302
    params = query_of(r.headers["location"])
    fake_kinde.nonce = params["nonce"][0]
    return params["state"][0]


def complete_login(web, fake_kinde):
    state = begin_login(web, fake_kinde)
    return web.get("/auth/callback", params={"code": "code-1", "state": state})


def test_health_endpoint(web):
    r = web.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy", "service": "kinde-portal"}


def test_login_redirect(web, app):
    r = web.get("/auth/login")

    assert r.status_code == 302
    url = r.headers["location"]
    assert url.startswith(f"{DOMAIN}/oauth2/auth?")
    params = query_of(url)
    assert params["client_id"] == [CLIENT_ID]
    assert params["response_type"] == ["code"]
    assert params["redirect_uri"] == ["http://testserver/auth/callback"]
    assert params["start_page"] == ["login"]
    assert stored_session(app, web).auth_request.state == params["state"][0]


def test_login_sets_session_cookie(web):
    r = web.get("/auth/login")
    assert COOKIE in r.cookies
    assert "httponly" in r.headers["set-cookie"].lower()


def test_register_redirect(web):
    r = web.get("/auth/register", params={"login_hint": "ada@example.com", "ignored": "x"})

    params = query_of(r.headers["location"])
    assert params["start_page"] == ["registration"]
    assert params["login_hint"] == ["ada@example.com"]
    assert "ignored" not in params


def test_callback_provider_error(web):
    web.get("/")
    r = web.get("/auth/callback", params={"error": "access_denied", "error_description": "User cancelled"})

    assert r.status_code == 302
    assert r.headers["location"] == "http://testserver/"
    page = web.get("/").text
    assert "access_denied" in page
    assert "User cancelled" in page


def test_callback_provider_error_default_description(web):
    r = web.get("/auth/callback", params={"error": "access_denied"})
    assert r.headers["location"] == "http://testserver/"
    assert "Authentication failed" in web.get("/").text


def test_callback_missing_code(web, fake_kinde):
    r = web.get("/auth/callback")

    assert r.status_code == 302
    assert r.headers["location"] == "http://testserver/"
    assert "No authorization code received" in web.get("/").text
    assert fake_kinde.requests == []


def test_callback_invalid_state(web, fake_kinde):
    begin_login(web, fake_kinde)
    r = web.get("/auth/callback", params={"code": "code-1", "state": "invalid"})

    assert r.headers["location"] == "http://testserver/"
    page = web.get("/").text
    assert "Failed to authenticate" in page
    assert "state" not in page.lower()
    assert fake_kinde.requests == []


def test_callback_token_rejection_shows_generic_notice(web, fake_kinde):
    fake_kinde.token_response = (400, {"error": "invalid_grant", "error_description": "Code expired"})
    r = complete_login(web, fake_kinde)

    assert r.headers["location"] == "http://testserver/"
    page = web.get("/").text
    assert "Failed to authenticate" in page
    assert "Code expired" not in page


def test_full_login_flow(web, app, fake_kinde):
    r = complete_login(web, fake_kinde)

    assert r.status_code == 302
    assert r.headers["location"] == "http://testserver/dashboard"
    session = stored_session(app, web)
    assert app.state.kinde_client.is_authenticated(session)
    assert session.auth_request is None

    page = web.get("/dashboard")
    assert page.status_code == 200
    assert "Successfully logged in!" in page.text
    assert "Ada Lovelace" in page.text
    assert "ada@example.com" in page.text
    assert "kp_user_1" in page.text
    assert "https://img.example.com/ada.png" in page.text


def test_callback_replay_fails(web, fake_kinde):
    state = begin_login(web, fake_kinde)
    web.get("/auth/callback", params={"code": "code-1", "state": state})

    r = web.get("/auth/callback", params={"code": "code-1", "state": state})
    assert r.headers["location"] == "http://testserver/"
    assert len(fake_kinde.requests) == 1


def test_home_redirects_signed_in_users(web, fake_kinde):
    complete_login(web, fake_kinde)
    r = web.get("/")
    assert r.status_code == 302
    assert r.headers["location"] == "http://testserver/dashboard"


def test_home_for_guests(web):
    r = web.get("/")
    assert r.status_code == 200
    assert "/auth/login" in r.text
    assert "/auth/register" in r.text


def test_gate_redirects_browsers_and_remembers_url(web, app, fake_kinde):
    r = web.get("/dashboard", params={"tab": "billing"}, headers={"Accept": "text/html"})

    assert r.status_code == 302
    assert r.headers["location"] == "http://testserver/auth/login"
    session = stored_session(app, web)
    assert session.intended_url == "/dashboard?tab=billing"
    assert session.notices["error"] == "Please log in to access this page."

    r = complete_login(web, fake_kinde)
    assert r.headers["location"] == "/dashboard?tab=billing"
    assert stored_session(app, web).intended_url is None


def test_gate_rejects_json_clients(web, app):
    r = web.get("/auth/me", headers={"Accept": "application/json"})

    assert r.status_code == 401
    assert r.json() == {"error": "Unauthenticated"}
    session = stored_session(app, web)
    assert session.intended_url is None
    assert session.notices == {}


def test_gate_rejects_xhr_clients(web):
    r = web.get("/dashboard", headers={"X-Requested-With": "XMLHttpRequest"})
    assert r.status_code == 401
    assert r.json() == {"error": "Unauthenticated"}


def test_me_returns_profile_and_permissions(web, fake_kinde):
    complete_login(web, fake_kinde)

    r = web.get("/auth/me", headers={"Accept": "application/json"})
    assert r.status_code == 200
    body = r.json()
    assert body["profile"]["id"] == "kp_user_1"
    assert body["profile"]["email"] == "ada@example.com"
    assert body["org_code"] == "org_acme"
    assert body["permissions"] == ["read:reports"]


def test_dashboard_fetches_profile_when_no_id_token(web, fake_kinde):
    fake_kinde.include_id_token = False
    complete_login(web, fake_kinde)

    page = web.get("/dashboard")
    assert page.status_code == 200
    assert "Ada Lovelace" in page.text
    assert any(req.url.path == "/oauth2/v2/user_profile" for req in fake_kinde.requests)


def test_logout(web, app, fake_kinde):
    complete_login(web, fake_kinde)
    old_session_id = web.cookies.get(COOKIE)

    r = web.get("/auth/logout")

    assert r.status_code == 302
    assert r.headers["location"].startswith(f"{DOMAIN}/logout?")
    assert query_of(r.headers["location"])["redirect"] == ["http://testserver/"]
    assert asyncio.run(app.state.session_manager.get_session(old_session_id)) is None

    r = web.get("/dashboard")
    assert r.status_code == 302
    assert r.headers["location"] == "http://testserver/auth/login"


def test_gate_does_not_remember_non_get_requests(web, app):
    async def create_report(session: AuthenticatedSession):
        return {"created": True}

    app.add_api_route("/reports", create_report, methods=["POST"])

    r = web.post("/reports", headers={"Accept": "text/html"})

    assert r.status_code == 302
    assert r.headers["location"] == "http://testserver/auth/login"
    session = stored_session(app, web)
    assert session.intended_url is None
    assert session.notices["error"] == "Please log in to access this page."


def test_callback_with_unusable_token_lifetime_goes_home(web, app, fake_kinde):
    fake_kinde.token_response = (200, {"access_token": "at", "expires_in": 10**20})
    r = complete_login(web, fake_kinde)

    assert r.status_code == 302
    assert r.headers["location"] == "http://testserver/"
    assert not app.state.kinde_client.is_authenticated(stored_session(app, web))
    assert "Failed to authenticate" in web.get("/").text
