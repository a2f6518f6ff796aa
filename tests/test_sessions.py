import os
from dataclasses import replace

import pytest

from conftest import ADMIN_PASSWORD, ADMIN_USERNAME
from secureblog.exceptions import AuthError
from secureblog.sessions import SESSION_ID_PATTERN


@pytest.fixture
def guard(services):
    return services.sessions


def session_file(services, session_id):
    return services.settings.sessions_dir / f"sess_{session_id}.json"


def resume(guard, context, session):
    guard.save(session)
    return guard.start(replace(context, session_id=session.id))


def test_new_session_is_bound_to_fingerprint(guard, context):
    session = guard.start(context)

    assert session.is_new
    assert SESSION_ID_PATTERN.match(session.id)
    assert session.data["fingerprint"] == context.fingerprint


def test_saved_session_resumes(guard, context):
    session = guard.start(context)
    session.data["theme"] = "dark"

    resumed = resume(guard, context, session)

    assert resumed.id == session.id
    assert not resumed.is_new
    assert resumed.data["theme"] == "dark"


def test_malformed_session_id_starts_fresh(guard, context):
    session = guard.start(replace(context, session_id="../../etc/passwd"))
    assert session.is_new


def test_fingerprint_mismatch_silently_issues_new_session(guard, context, services):
    session = guard.start(context)
    guard.authenticate(session, context, ADMIN_USERNAME, ADMIN_PASSWORD)
    guard.save(session)

    hijacker = replace(context, user_agent="curl/8.0", session_id=session.id)
    replacement = guard.start(hijacker)

    assert replacement.id != session.id
    assert replacement.is_new
    assert "user" not in replacement.data
    assert not session_file(services, session.id).exists()


def test_session_id_regenerated_after_interval(guard, context, clock, services):
    session = guard.start(context)
    guard.save(session)

    clock.advance(services.settings.session_regenerate_interval + 1)
    resumed = guard.start(replace(context, session_id=session.id))

    assert resumed.id != session.id
    assert resumed.data["created"] == clock()
    assert not session_file(services, session.id).exists()


def test_authenticate_admin(guard, context):
    session = guard.start(context)
    old_id = session.id

    user = guard.authenticate(session, context, ADMIN_USERNAME, ADMIN_PASSWORD)

    assert user == {"username": ADMIN_USERNAME, "role": "admin"}
    assert session.id != old_id
    assert guard.is_authenticated(session, context)
    assert session.username == ADMIN_USERNAME
    assert session.role == "admin"


def test_authenticate_file_user(guard, context, services):
    services.users.add_user("editor1", "editor-password-123", "editor")
    session = guard.start(context)

    user = guard.authenticate(session, context, "editor1", "editor-password-123")

    assert user == {"username": "editor1", "role": "editor"}


def test_wrong_credentials_give_generic_message(guard, context):
    session = guard.start(context)

    with pytest.raises(AuthError) as wrong_password:
        guard.authenticate(session, context, ADMIN_USERNAME, "not-the-password")
    with pytest.raises(AuthError) as unknown_user:
        guard.authenticate(session, context, "nobody", "not-the-password")

    assert wrong_password.value.message == "Invalid credentials"
    assert unknown_user.value.message == "Invalid credentials"
    assert not guard.is_authenticated(session, context)


def test_lockout_blocks_correct_password_until_expiry(guard, context, clock, services):
    session = guard.start(context)
    for _ in range(services.settings.max_login_attempts):
        with pytest.raises(AuthError):
            guard.authenticate(session, context, ADMIN_USERNAME, "not-the-password")

    with pytest.raises(AuthError) as locked:
        guard.authenticate(session, context, ADMIN_USERNAME, ADMIN_PASSWORD)
    assert "locked" in locked.value.message

    clock.advance(services.settings.login_lockout_time + 1)
    guard.authenticate(session, context, ADMIN_USERNAME, ADMIN_PASSWORD)
    assert guard.is_authenticated(session, context)

    # A successful login clears the history
    assert services.throttle.record_failure(ADMIN_USERNAME) == 1


def test_authenticated_only_for_matching_fingerprint(guard, context):
    session = guard.start(context)
    guard.authenticate(session, context, ADMIN_USERNAME, ADMIN_PASSWORD)

    other = replace(context, client_ip="198.51.100.77")
    assert not guard.is_authenticated(session, other)


def test_logout_clears_everything(guard, context, services):
    session = guard.start(context)
    guard.authenticate(session, context, ADMIN_USERNAME, ADMIN_PASSWORD)
    guard.save(session)

    guard.logout(session, context)

    assert session.destroyed
    assert session.data == {}
    assert not session_file(services, session.id).exists()
    assert not guard.is_authenticated(session, context)

    guard.save(session)
    assert not session_file(services, session.id).exists()


def test_post_unlock_expires(guard, context, clock, services):
    session = guard.start(context)
    guard.unlock_post(session, "123_abc")

    assert guard.is_post_unlocked(session, "123_abc")
    assert not guard.is_post_unlocked(session, "456_def")

    clock.advance(services.settings.post_password_ttl + 1)
    assert not guard.is_post_unlocked(session, "123_abc")


def test_expired_session_files_are_purged(guard, services):
    stale = session_file(services, "b" * 64)
    stale.write_text("{}")
    old = guard.clock() - services.settings.session_lifetime - 10
    os.utime(stale, (old, old))

    assert guard.store.purge_expired(services.settings.session_lifetime) == 1
    assert not stale.exists()


def test_cookie_params(guard, context):
    params = guard.cookie_params(replace(context, is_https=True))

    assert params == {
        "key": "SECURE_CMS_SESSION",
        "path": "/",
        "httponly": True,
        "samesite": "strict",
        "secure": True,
    }
    assert guard.cookie_params(context)["secure"] is False
