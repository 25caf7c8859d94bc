import unittest
from unittest.mock import MagicMock

from botocore.exceptions import ClientError, EndpointConnectionError

from muzac.errors import AuthenticationFailure, UpstreamFailure, ValidationFailure
from muzac.identity import CognitoIdentityProvider, InMemoryIdentityProvider


def _client_error(code, message="boom"):
    return ClientError({"Error": {"Code": code, "Message": message}}, "Operation")


class CognitoIdentityProviderTests(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.identity = CognitoIdentityProvider("client-id", client=self.client)

    def test_login_returns_access_token(self):
        self.client.initiate_auth.return_value = {
            "AuthenticationResult": {"AccessToken": "tok"}
        }
        self.assertEqual(self.identity.login("a@b.c", "secret"), "tok")
        self.client.initiate_auth.assert_called_once_with(
            AuthFlow="USER_PASSWORD_AUTH",
            ClientId="client-id",
            AuthParameters={"USERNAME": "a@b.c", "PASSWORD": "secret"},
        )

    def test_login_bad_password_is_authentication_failure(self):
        self.client.initiate_auth.side_effect = _client_error(
            "NotAuthorizedException", "Incorrect username or password."
        )
        with self.assertRaises(AuthenticationFailure) as ctx:
            self.identity.login("a@b.c", "wrong")
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(
            ctx.exception.as_body(), {"message": "Incorrect username or password."}
        )

    def test_login_challenge_without_token(self):
        self.client.initiate_auth.return_value = {"ChallengeName": "NEW_PASSWORD_REQUIRED"}
        with self.assertRaises(AuthenticationFailure):
            self.identity.login("a@b.c", "secret")

    def test_login_other_errors_are_validation_failures(self):
        self.client.initiate_auth.side_effect = _client_error(
            "UserNotConfirmedException", "User is not confirmed."
        )
        with self.assertRaises(ValidationFailure) as ctx:
            self.identity.login("a@b.c", "secret")
        self.assertEqual(ctx.exception.message, "User is not confirmed.")

    def test_login_network_failure_is_upstream(self):
        self.client.initiate_auth.side_effect = EndpointConnectionError(
            endpoint_url="https://cognito"
        )
        with self.assertRaises(UpstreamFailure):
            self.identity.login("a@b.c", "secret")

    def test_register_existing_user_resends_code(self):
        self.client.sign_up.side_effect = _client_error("UsernameExistsException")
        self.identity.register("a@b.c", "secret123")
        self.client.resend_confirmation_code.assert_called_once_with(
            ClientId="client-id", Username="a@b.c"
        )

    def test_register_sends_email_attribute(self):
        self.identity.register("a@b.c", "secret123")
        kwargs = self.client.sign_up.call_args.kwargs
        self.assertEqual(kwargs["UserAttributes"], [{"Name": "email", "Value": "a@b.c"}])

    def test_register_invalid_password(self):
        self.client.sign_up.side_effect = _client_error(
            "InvalidPasswordException", "Password not long enough"
        )
        with self.assertRaises(ValidationFailure):
            self.identity.register("a@b.c", "x")

    def test_confirm_registration_error(self):
        self.client.confirm_sign_up.side_effect = _client_error("CodeMismatchException")
        with self.assertRaises(ValidationFailure):
            self.identity.confirm_registration("a@b.c", "000000")

    def test_verify_prefers_email_attribute(self):
        self.client.get_user.return_value = {
            "Username": "sub-123",
            "UserAttributes": [
                {"Name": "sub", "Value": "sub-123"},
                {"Name": "email", "Value": "a@b.c"},
            ],
        }
        user = self.identity.verify_access_token("tok")
        self.assertEqual(user.email, "a@b.c")
        self.assertEqual(user.sub, "sub-123")

    def test_verify_falls_back_to_username(self):
        self.client.get_user.return_value = {"Username": "sub-123", "UserAttributes": []}
        self.assertEqual(self.identity.verify_access_token("tok").email, "sub-123")

    def test_verify_failure(self):
        self.client.get_user.side_effect = _client_error("NotAuthorizedException")
        with self.assertRaises(AuthenticationFailure):
            self.identity.verify_access_token("bad")

    def test_requires_client_id(self):
        with self.assertRaises(ValueError):
            CognitoIdentityProvider("", client=MagicMock())


class InMemoryIdentityProviderTests(unittest.TestCase):
    def setUp(self):
        self.identity = InMemoryIdentityProvider()

    def _register_confirmed(self, email="a@b.c", password="secret123"):
        self.identity.register(email, password)
        self.identity.confirm_registration(email, self.identity.pending_code(email))

    def test_full_signup_flow(self):
        self._register_confirmed()
        token = self.identity.login("a@b.c", "secret123")
        user = self.identity.verify_access_token(token)
        self.assertEqual(user.email, "a@b.c")
        self.assertTrue(user.sub)

    def test_login_before_confirmation(self):
        self.identity.register("a@b.c", "secret123")
        with self.assertRaises(ValidationFailure):
            self.identity.login("a@b.c", "secret123")

    def test_wrong_password(self):
        self._register_confirmed()
        with self.assertRaises(AuthenticationFailure):
            self.identity.login("a@b.c", "nope")

    def test_register_twice_issues_new_code(self):
        self.identity.register("a@b.c", "secret123")
        first = self.identity.pending_code("a@b.c")
        self.identity.users["a@b.c"].code = "not-" + first
        self.identity.register("a@b.c", "secret123")
        self.assertNotEqual(self.identity.pending_code("a@b.c"), "not-" + first)

    def test_short_password_rejected(self):
        with self.assertRaises(ValidationFailure):
            self.identity.register("a@b.c", "short")

    def test_wrong_code(self):
        self.identity.register("a@b.c", "secret123")
        with self.assertRaises(ValidationFailure):
            self.identity.confirm_registration("a@b.c", "bad-code")

    def test_resend_unknown_user(self):
        with self.assertRaises(ValidationFailure):
            self.identity.resend_confirmation_code("ghost@b.c")

    def test_unknown_token(self):
        with self.assertRaises(AuthenticationFailure):
            self.identity.verify_access_token("nope")


if __name__ == "__main__":
    unittest.main()
