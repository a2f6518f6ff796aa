import pytest

from secureblog.csrf import UPLOAD_FORM, CsrfGuard
from secureblog.sessions import Session


@pytest.fixture
def guard(clock):
    return CsrfGuard(token_length=32, lifetime=3600, clock=clock)


@pytest.fixture
def session():
    return Session(id="a" * 64)


def test_generated_token_verifies_once(guard, session):
    token = guard.generate(session, "post_form")

    assert len(token) == 64
    assert guard.verify(session, token, "post_form")
    assert not guard.verify(session, token, "post_form")


def test_expired_token_fails_even_if_correct(guard, session, clock):
    token = guard.generate(session, "post_form")
    clock.advance(3601)

    assert not guard.verify(session, token, "post_form")
    assert "post_form" not in session.data["csrf_tokens"]


def test_token_is_scoped_to_its_form(guard, session):
    token = guard.generate(session, "form_a")
    guard.generate(session, "form_b")

    assert not guard.verify(session, token, "form_b")
    assert guard.verify(session, token, "form_a")


def test_wrong_or_missing_token_fails(guard, session):
    guard.generate(session, "post_form")

    assert not guard.verify(session, "deadbeef", "post_form")
    assert not guard.verify(session, None, "post_form")
    assert not guard.verify(session, "anything", "never_issued")


def test_regenerating_replaces_previous_token(guard, session):
    old = guard.generate(session, "post_form")
    new = guard.generate(session, "post_form")

    assert old != new
    assert not guard.verify(session, old, "post_form")
    assert guard.verify(session, new, "post_form")


def test_upload_token_is_reusable_until_expiry(guard, session, clock):
    token = guard.generate(session, UPLOAD_FORM)

    assert guard.verify(session, token, UPLOAD_FORM)
    assert guard.verify(session, token, UPLOAD_FORM)

    clock.advance(3601)
    assert not guard.verify(session, token, UPLOAD_FORM)
