from datetime import datetime, timedelta, timezone

import jwt
import pytest

from manifest_api.auth.security import (
    create_access_token,
    decode_access_token,
    generate_otp,
    hash_password,
    otp_matches,
    verify_password,
)


def test_password_hash_roundtrip():
    h = hash_password("s3cret!")
    assert h != "s3cret!"
    assert verify_password("s3cret!", h)
    assert not verify_password("wrong", h)


def test_verify_password_tolerates_garbage():
    assert not verify_password("x", "not-a-hash")
    assert not verify_password("", hash_password("x"))


def test_hash_password_rejects_blank():
    with pytest.raises(ValueError):
        hash_password("")


def test_generate_otp_is_six_digits():
    for _ in range(200):
        otp = generate_otp()
        assert len(otp) == 6
        assert otp.isdigit()
        assert otp[0] != "0"


def test_otp_matches_accepts_numeric_input():
    assert otp_matches("123456", 123456)
    assert otp_matches("123456", " 123456 ")
    assert not otp_matches("123456", "123457")
    assert not otp_matches(None, "123456")
    assert not otp_matches("123456", None)


def test_token_carries_identity_claims():
    payload = {"id": 7, "username": "a", "role": "admin", "email": "a@x.com"}
    token = create_access_token(secret="k", payload=payload, expires_in="2h")
    claims = decode_access_token(token=token, secret="k")
    assert {k: claims[k] for k in payload} == payload
    assert claims["exp"] - claims["iat"] == 7200


def test_token_rejected_with_wrong_secret():
    token = create_access_token(secret="k", payload={"id": 1}, expires_in="1h")
    with pytest.raises(jwt.InvalidSignatureError):
        decode_access_token(token=token, secret="other")


def test_expired_token_rejected():
    past = datetime.now(timezone.utc) - timedelta(minutes=5)
    token = jwt.encode({"id": 1, "exp": int(past.timestamp())}, "k", algorithm="HS256")
    with pytest.raises(jwt.ExpiredSignatureError):
        decode_access_token(token=token, secret="k")
