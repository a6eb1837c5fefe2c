from auth import issue_token, owner_from_authorization, verify_token


def test_token_round_trip() -> None:
    token = issue_token("alice")
    assert verify_token(token) == "alice"
    assert owner_from_authorization(f"Bearer {token}") == "alice"


def test_tampered_or_missing_tokens_are_rejected() -> None:
    token = issue_token("alice")
    assert verify_token("x" + token) is None
    assert verify_token(token.replace(".", "..", 1)) is None
    assert verify_token("") is None
    assert owner_from_authorization(None) is None
    assert owner_from_authorization(token) is None
    assert owner_from_authorization(f"Basic {token}") is None


def test_expired_token_is_rejected() -> None:
    token = issue_token("alice")
    assert verify_token(token, max_age_secs=-1) is None
