import pytest

from invitegate.security import passwords


def test_hash_and_verify():
    encoded = passwords.hash_password("correct-horse-battery", iterations=1000)
    assert encoded.startswith("pbkdf2_sha256$1000$")
    assert passwords.verify_password("correct-horse-battery", encoded)
    assert not passwords.verify_password("wrong-password", encoded)


def test_salts_differ():
    first = passwords.hash_password("correct-horse-battery", iterations=1000)
    second = passwords.hash_password("correct-horse-battery", iterations=1000)
    assert first != second


def test_short_password_rejected():
    with pytest.raises(passwords.PasswordError):
        passwords.hash_password("short")


def test_malformed_hash_never_verifies():
    assert not passwords.verify_password("anything", "garbage")
    assert not passwords.verify_password("anything", "md5$1$zz$zz")
