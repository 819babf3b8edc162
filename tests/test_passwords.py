from __future__ import annotations

import unittest
from unittest.mock import patch

from staff_access import passwords
from staff_access.passwords import KEY_LENGTH, hash_password, verify_dummy_password, verify_password


def _flip_hex_char(value: str, index: int) -> str:
    replacement = "0" if value[index] != "0" else "1"
    return value[:index] + replacement + value[index + 1 :]


class PasswordStoreTests(unittest.TestCase):
    def test_hash_uses_salt_colon_hash_format(self) -> None:
        stored = hash_password("Correct-Horse-1")
        salt_hex, hash_hex = stored.split(":")

        self.assertEqual(len(salt_hex), 32)
        self.assertEqual(len(hash_hex), 128)
        int(salt_hex, 16)
        int(hash_hex, 16)

    def test_verify_accepts_matching_password(self) -> None:
        stored = hash_password("Correct-Horse-1")
        self.assertTrue(verify_password(stored, "Correct-Horse-1"))
        self.assertFalse(verify_password(stored, "correct-horse-1"))

    def test_hashing_is_salted(self) -> None:
        first = hash_password("same-password")
        second = hash_password("same-password")

        self.assertNotEqual(first, second)
        self.assertTrue(verify_password(first, "same-password"))
        self.assertTrue(verify_password(second, "same-password"))

    def test_single_character_mutation_fails(self) -> None:
        stored = hash_password("Correct-Horse-1")
        salt_hex, hash_hex = stored.split(":")

        self.assertFalse(verify_password(f"{_flip_hex_char(salt_hex, 0)}:{hash_hex}", "Correct-Horse-1"))
        self.assertFalse(verify_password(f"{salt_hex}:{_flip_hex_char(hash_hex, 10)}", "Correct-Horse-1"))

    def test_malformed_stored_values_verify_false(self) -> None:
        for stored in (None, "", "no-separator", "abcd:not-hex", "abcd:00ff", ":"):
            with self.subTest(stored=stored):
                self.assertFalse(verify_password(stored, "anything"))

    def test_malformed_stored_values_still_run_the_kdf(self) -> None:
        malformed = (None, "", "no-separator", "abcd:not-hex", "abcd:00ff", ":", ":" + "00" * KEY_LENGTH)
        for stored in malformed:
            with self.subTest(stored=stored):
                with patch("staff_access.passwords._verify_key", return_value=True) as verify_key:
                    self.assertFalse(verify_password(stored, "anything"))
                verify_key.assert_called_once()
                _, salt_hex, expected = verify_key.call_args.args
                self.assertEqual(salt_hex, passwords._DUMMY_SALT_HEX)
                self.assertEqual(len(expected), KEY_LENGTH)

    def test_well_formed_wrong_password_runs_the_kdf_once(self) -> None:
        stored = hash_password("Correct-Horse-1")

        with patch("staff_access.passwords._verify_key", wraps=passwords._verify_key) as verify_key:
            self.assertFalse(verify_password(stored, "wrong-password"))

        verify_key.assert_called_once()
        self.assertEqual(verify_key.call_args.args[1], stored.split(":")[0])

    def test_dummy_verification_never_matches(self) -> None:
        with patch("staff_access.passwords._verify_key", wraps=passwords._verify_key) as verify_key:
            self.assertFalse(verify_dummy_password("Correct-Horse-1"))

        verify_key.assert_called_once()


if __name__ == "__main__":
    unittest.main()
