"""Tests for setting lookup, reply parsing and the Ollama generation backend."""
import json
import unittest
from unittest.mock import AsyncMock, MagicMock

from proximity.generation import GenerationError, OllamaGenerationBackend, parse_model_reply
from proximity.matching import build_system_prompt, find_best_match, tokenize
from proximity.models.ollama import OllamaResult
from proximity.schema import GenerationRequest

REFERENCE = {
    "zoom": {
        "lower_bound": 0.5,
        "upper_bound": 3.0,
        "current": 1.0,
        "commands": {"gnome": "gsettings set org.gnome.desktop.interface text-scaling-factor"},
    },
    "cursor_size": {
        "lower_bound": 24,
        "upper_bound": 96,
        "current": 24,
        "commands": {"gnome": "gsettings set org.gnome.desktop.interface cursor-size"},
    },
    "unsupported_thing": {"current": 1, "commands": {"gnome": ""}},
}


class TestMatching(unittest.TestCase):
    def test_tokenize_drops_stopwords_and_punctuation(self):
        self.assertEqual(tokenize("Set the cursor_size, please!"), {"cursor", "size", "please"})

    def test_best_match(self):
        self.assertEqual(find_best_match("increase the cursor size", REFERENCE), "cursor_size")
        self.assertEqual(find_best_match("zoom in a bit", REFERENCE), "zoom")

    def test_no_overlap(self):
        self.assertIsNone(find_best_match("hello there", REFERENCE))

    def test_skips_settings_without_a_command(self):
        self.assertIsNone(find_best_match("unsupported thing", REFERENCE))

    def test_system_prompt_embeds_reference(self):
        prompt = build_system_prompt("gnome", REFERENCE)
        self.assertIn("(gnome)", prompt)
        self.assertIn("text-scaling-factor", prompt)
        self.assertIn('"message": "..."', prompt)


class TestParseModelReply(unittest.TestCase):
    def test_message_and_command(self):
        result = parse_model_reply('{"message": "Done", "command": " set-font-scale 1.5 "}')
        self.assertEqual(result.message.content, "Done")
        self.assertEqual(result.command, "set-font-scale 1.5")
        self.assertTrue(result.has_command)

    def test_empty_command_means_none(self):
        result = parse_model_reply('{"message": "Hi", "command": ""}')
        self.assertIsNone(result.command)
        self.assertFalse(result.has_command)

    def test_invalid_json(self):
        with self.assertRaises(GenerationError):
            parse_model_reply("not json")

    def test_missing_message(self):
        with self.assertRaises(GenerationError):
            parse_model_reply('{"command": "x"}')


class TestOllamaGenerationBackend(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.client = MagicMock()
        self.client.chat = AsyncMock(
            return_value=OllamaResult(
                text=json.dumps({"message": "Bigger now", "command": "gsettings set x cursor-size 48"}),
                duration_ms=12.0,
                ok=True,
            )
        )
        self.preferences = MagicMock()
        self.preferences.loaded = True
        self.preferences.filtered.return_value = REFERENCE
        self.backend = OllamaGenerationBackend(self.client, self.preferences, "gnome", history_size=4)

    async def test_first_turn_sends_system_prompt_and_snippet(self):
        result = await self.backend.generate(GenerationRequest("alpha", "bigger cursor size", "s1"))
        self.assertEqual(result.message.content, "Bigger now")
        self.assertEqual(result.command, "gsettings set x cursor-size 48")

        model, messages = self.client.chat.call_args.args
        self.assertEqual(model, "alpha")
        self.assertEqual([m["role"] for m in messages], ["system", "user"])
        self.assertIn('"cursor_size"', messages[1]["content"])
        self.assertNotIn('"zoom"', messages[1]["content"])
        self.assertTrue(messages[1]["content"].endswith("bigger cursor size"))
        self.preferences.filtered.assert_called_with("gnome")

    async def test_history_is_kept_per_session(self):
        await self.backend.generate(GenerationRequest("alpha", "bigger cursor size", "s1"))
        await self.backend.generate(GenerationRequest("alpha", "even bigger", "s1"))
        _, messages = self.client.chat.call_args.args
        self.assertEqual([m["role"] for m in messages], ["system", "user", "assistant", "user"])
        # No match for the follow-up, so the previous snippet is reused.
        self.assertIn('"cursor_size"', messages[-1]["content"])

        await self.backend.generate(GenerationRequest("alpha", "zoom", "s2"))
        _, messages = self.client.chat.call_args.args
        self.assertEqual([m["role"] for m in messages], ["system", "user"])

    async def test_history_is_bounded(self):
        for i in range(5):
            await self.backend.generate(GenerationRequest("alpha", f"cursor {i}", "s1"))
        _, messages = self.client.chat.call_args.args
        self.assertEqual(len(messages), 1 + 4 + 1)

    async def test_failed_call_raises_and_skips_history(self):
        self.client.chat.return_value = OllamaResult(text="", duration_ms=1.0, ok=False, error="refused")
        with self.assertRaises(GenerationError) as ctx:
            await self.backend.generate(GenerationRequest("alpha", "zoom", "s1"))
        self.assertEqual(str(ctx.exception), "Failed to generate text: refused")
        self.assertEqual(len(self.backend._histories["s1"]), 0)

    async def test_forget_drops_session_state(self):
        await self.backend.generate(GenerationRequest("alpha", "zoom", "s1"))
        await self.backend.generate(GenerationRequest("alpha", "zoom", "s2"))
        self.backend.forget("s1")
        self.assertEqual(set(self.backend._histories), {"s2"})
        self.assertEqual(set(self.backend._system_prompts), {"s2"})

    async def test_fetches_snapshot_when_not_loaded(self):
        self.preferences.loaded = False
        self.preferences.fetch_snapshot = AsyncMock(return_value=None)
        await self.backend.generate(GenerationRequest("alpha", "zoom", "s1"))
        self.preferences.fetch_snapshot.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
