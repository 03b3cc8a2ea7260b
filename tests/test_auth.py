import unittest
from datetime import datetime, timedelta, timezone

from jose import JWTError

import survey_fixtures  # noqa: F401

from survey_pulse import auth


class PasswordTests(unittest.TestCase):
    def test_verify(self):
        self.assertTrue(auth.verify(auth.SURVEY_PASSWORD))
        self.assertFalse(auth.verify(auth.SURVEY_PASSWORD + "x"))
        self.assertFalse(auth.verify(""))

    def test_admin_credentials(self):
        self.assertTrue(auth.verify_admin_credentials(auth.ADMIN_USERNAME, auth.ADMIN_PASSWORD))
        self.assertFalse(auth.verify_admin_credentials(auth.ADMIN_USERNAME, "wrong"))


class AccessTokenTests(unittest.TestCase):
    def test_round_trip(self):
        now = datetime.now(timezone.utc)
        claims = auth.decode_access_token(auth.create_access_token(now), now)
        self.assertEqual(claims["period"], auth.current_period_label(now))

    def test_token_stops_working_next_month(self):
        now = datetime.now(timezone.utc)
        token = auth.create_access_token(now)
        with self.assertRaises(JWTError):
            auth.decode_access_token(token, now + timedelta(days=40))

    def test_tampered_token(self):
        token = auth.create_access_token()
        with self.assertRaises(JWTError):
            auth.decode_access_token(token[:-2] + ("aa" if token[-2:] != "aa" else "bb"))


if __name__ == "__main__":
    unittest.main()
