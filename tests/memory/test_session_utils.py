import re
import unittest

from travel_rag_agent.memory import generate_session_id, generate_session_title


class GenerateSessionIdTests(unittest.TestCase):
    def test_id_is_prefixed_time_plus_random_suffix(self) -> None:
        session_id = generate_session_id(now_ms=36**3)
        self.assertRegex(session_id, r"^chat_1000_[0-9a-z]{6}$")

    def test_ids_do_not_collide(self) -> None:
        ids = {generate_session_id(now_ms=1_700_000_000_000) for _ in range(200)}
        self.assertEqual(200, len(ids))

    def test_default_uses_current_time(self) -> None:
        self.assertIsNotNone(re.fullmatch(r"chat_[0-9a-z]+_[0-9a-z]{6}", generate_session_id()))


class GenerateSessionTitleTests(unittest.TestCase):
    def test_short_message_is_kept(self) -> None:
        self.assertEqual("best parks in Tokyo", generate_session_title("best parks in Tokyo"))

    def test_newlines_collapse_to_single_spaces(self) -> None:
        self.assertEqual("where to eat in Osaka", generate_session_title("  where to eat\n\nin   Osaka\n"))

    def test_long_message_is_truncated_with_ellipsis(self) -> None:
        title = generate_session_title("a" * 80)
        self.assertEqual(50, len(title))
        self.assertEqual("a" * 47 + "...", title)

    def test_exactly_max_length_is_not_truncated(self) -> None:
        self.assertEqual("b" * 50, generate_session_title("b" * 50))
