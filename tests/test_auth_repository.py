import pytest

from core import constants as C
from core.errors import ApiError, ValidationError
from tests.factories import user_json

TOKENS = {"access_token": "access-9", "refresh_token": "refresh-9", "token_type": "bearer"}


def test_login_validates_before_network(client, http):
    with pytest.raises(ValidationError) as info:
        client.auth.login("not-an-email", "secret123")
    assert info.value.field == "email"
    with pytest.raises(ValidationError):
        client.auth.login("andi@clinic.id", "")
    assert http.calls == []


def test_login_sends_credentials(client, http):
    http.add("POST", C.SIGNIN, {"message": "OTP sent"})
    result = client.auth.login(" andi@clinic.id ", "secret123")
    assert result.message == "OTP sent"
    assert http.calls[-1]["json"] == {"email": "andi@clinic.id", "password": "secret123"}
    assert not client.auth.is_authenticated()


def test_verify_login_otp_establishes_session(client, http):
    http.add("POST", C.SIGNIN_VERIFY_OTP, TOKENS)
    http.add("GET", C.AUTH_ME, user_json())

    user = client.auth.verify_login_otp("andi@clinic.id", "123456")

    assert user.full_name == "Dr. Andi Pratama"
    assert client.auth.is_authenticated()
    assert client.session.access_token == "access-9"
    assert client.session.refresh_token == "refresh-9"
    assert client.auth.get_current_user().id == 7
    assert http.calls[-1]["headers"]["Authorization"] == "Bearer access-9"


def test_verify_rejects_malformed_otp(client, http):
    with pytest.raises(ValidationError) as info:
        client.auth.verify_login_otp("andi@clinic.id", "12ab56")
    assert info.value.field == "otp"
    assert http.calls == []


def test_wrong_otp_maps_error_and_keeps_signed_out(client, http):
    http.add("POST", C.SIGNIN_VERIFY_OTP, {"detail": "Invalid OTP"}, status=400)
    with pytest.raises(ApiError):
        client.auth.verify_login_otp("andi@clinic.id", "000000")
    assert not client.auth.is_authenticated()
    assert client.session.access_token is None


def test_logout_clears_even_when_signout_fails(signed_in, http):
    http.add("POST", C.SIGNOUT, {"detail": "boom"}, status=500)
    signed_in.auth.logout()
    assert not signed_in.auth.is_authenticated()
    assert signed_in.session.access_token is None
    assert signed_in.auth.get_current_user() is None


def test_logout_clears_cached_entities(signed_in, http):
    http.add("GET", C.PATIENTS, [])
    http.add("POST", C.SIGNOUT, {"message": "bye"})
    signed_in.patients.get_patients()
    signed_in.auth.logout()
    assert signed_in.patients.is_cache_expired()


def test_refresh_access_token_requires_refresh_token(client, http):
    with pytest.raises(ApiError) as info:
        client.auth.refresh_access_token()
    assert info.value.error_key == "error_not_authenticated"
    assert http.calls == []


def test_refresh_access_token_rotates_pair(signed_in, http):
    http.add("POST", C.REFRESH_TOKEN, TOKENS)
    tokens = signed_in.auth.refresh_access_token()
    assert tokens.access_token == "access-9"
    assert http.calls[-1]["json"] == {"refresh_token": "refresh-1"}
    assert signed_in.session.access_token == "access-9"


def test_signup_sends_multipart_without_photo(client, http):
    http.add("POST", C.SIGNUP, {"message": "OTP sent"})
    client.auth.signup("Andi Pratama", "andi@clinic.id", "secret123", phone_number="081234567890")
    files = http.calls[-1]["files"]
    assert files["email"] == (None, "andi@clinic.id")
    assert "profession" not in files


def test_signup_rejects_short_password(client, http):
    with pytest.raises(ValidationError) as info:
        client.auth.signup("Andi Pratama", "andi@clinic.id", "short")
    assert info.value.field == "password"
    assert http.calls == []


def test_update_profile_photo_refreshes_user(signed_in, http, fundus_png):
    http.add("POST", C.UPDATE_PROFILE_PHOTO, {"message": "updated"})
    http.add("GET", C.AUTH_ME, user_json(photo_url="https://cdn.test/u/7.png"))
    user = signed_in.auth.update_profile_photo(fundus_png)
    assert user.photo_url == "https://cdn.test/u/7.png"
    assert signed_in.session.current_user.photo_url == "https://cdn.test/u/7.png"


def test_update_user_profile_rejects_unknown_field(signed_in, http):
    with pytest.raises(ValidationError) as info:
        signed_in.users.update_user_profile(email="x@y.z")
    assert info.value.field == "email"
    assert http.calls == []


def test_update_user_profile_patches_and_caches(signed_in, http):
    http.add("PATCH", C.USERS_ME, user_json(profession="GP"))
    user = signed_in.users.update_user_profile(profession="GP", city_name=None)
    assert http.calls[-1]["json"] == {"profession": "GP"}
    assert user.profession == "GP"
    assert signed_in.users.get_current_user_profile().profession == "GP"
