"""Tests for the per-turn generation pipeline."""
import asyncio
import unittest

from proximity.gate import CommandGate
from proximity.generation import GenerationError
from proximity.pipeline import NO_MODEL_WARNING, GenerationPipeline
from proximity.schema import CommandState, Sender
from proximity.session import SessionManager

from fakes import FakeBackend, FakeExecutor, reply, settle


class PipelineTestCase(unittest.IsolatedAsyncioTestCase):
    def make(self, *results, timeout=5.0):
        self.notices = []
        self.sessions = SessionManager()
        self.backend = FakeBackend(*results)
        self.executor = FakeExecutor()
        self.gate = CommandGate(self.executor)
        self.pipeline = GenerationPipeline(
            self.sessions,
            self.backend,
            self.gate,
            timeout_seconds=timeout,
            notify=lambda kind, message: self.notices.append((kind, message)),
        )
        return self.pipeline


class TestSubmitTurn(PipelineTestCase):
    async def test_reply_with_command_arms_gate(self):
        pipeline = self.make(reply("Done", "set-font-scale 1.5"))
        session = self.sessions.select_model("alpha")
        outcome = await pipeline.submit_turn(session, "make the text bigger")

        self.assertEqual(outcome.status, "completed")
        self.assertEqual(outcome.command, "set-font-scale 1.5")
        self.assertEqual(self.gate.state, CommandState.ARMED)
        self.assertEqual(self.gate.pending, "set-font-scale 1.5")
        self.assertEqual(
            [(m.sender, m.text) for m in self.sessions.messages],
            [(Sender.USER, "make the text bigger"), (Sender.BOT, "Done")],
        )
        request = self.backend.requests[0]
        self.assertEqual(request.model, "alpha")
        self.assertEqual(request.prompt, "make the text bigger")
        self.assertEqual(request.session_id, session.session_id)
        self.assertEqual(self.executor.calls, [])

    async def test_confirm_after_turn_adds_no_message(self):
        pipeline = self.make(reply("Done", "set-font-scale 1.5"))
        session = self.sessions.select_model("alpha")
        await pipeline.submit_turn(session, "make the text bigger")
        outcome = await self.gate.confirm()
        self.assertTrue(outcome.ok)
        self.assertEqual(self.executor.calls, [("set-font-scale 1.5", True)])
        self.assertEqual(self.gate.state, CommandState.EMPTY)
        self.assertEqual(len(self.sessions.messages), 2)

    async def test_blank_command_does_not_arm(self):
        pipeline = self.make(reply("Nothing to change", "  "), reply("Hello"))
        session = self.sessions.select_model("alpha")
        await pipeline.submit_turn(session, "hi")
        await pipeline.submit_turn(session, "hi again")
        self.assertTrue(self.gate.is_empty)
        self.assertEqual(len(self.sessions.messages), 4)

    async def test_missing_model_warns(self):
        pipeline = self.make()
        outcome = await pipeline.submit_turn(None, "hello")
        self.assertEqual(outcome.status, "ignored")
        self.assertEqual(self.notices, [("warning", NO_MODEL_WARNING)])
        self.assertEqual(self.backend.requests, [])

    async def test_empty_prompt_is_silently_ignored(self):
        pipeline = self.make()
        session = self.sessions.select_model("alpha")
        outcome = await pipeline.submit_turn(session, "   ")
        self.assertEqual(outcome.status, "ignored")
        self.assertEqual(self.notices, [])
        self.assertEqual(self.sessions.messages, ())

    async def test_turn_in_flight_blocks_second_submit(self):
        pipeline = self.make(reply("one"), reply("two"))
        self.backend.release = asyncio.Event()
        session = self.sessions.select_model("alpha")
        first = asyncio.create_task(pipeline.submit_turn(session, "first"))
        await settle()
        self.assertTrue(session.turn_in_flight)

        outcome = await pipeline.submit_turn(session, "second")
        self.assertEqual(outcome.status, "ignored")
        self.assertEqual(len(self.backend.requests), 1)
        self.assertEqual(len(self.sessions.messages), 1)

        self.backend.release.set()
        await first
        self.assertFalse(session.turn_in_flight)
        self.assertEqual([m.text for m in self.sessions.messages], ["first", "one"])

    async def test_pending_command_blocks_new_turns(self):
        pipeline = self.make(reply("Done", "cmd 1"), reply("unused"))
        session = self.sessions.select_model("alpha")
        await pipeline.submit_turn(session, "change it")
        outcome = await pipeline.submit_turn(session, "change it again")
        self.assertEqual(outcome.status, "ignored")
        self.assertEqual(len(self.backend.requests), 1)
        self.gate.cancel()
        outcome = await pipeline.submit_turn(session, "change it again")
        self.assertEqual(outcome.status, "completed")

    async def test_backend_error_keeps_user_message_and_unlocks(self):
        pipeline = self.make(GenerationError("Failed to generate text: refused"), reply("ok"))
        session = self.sessions.select_model("alpha")
        outcome = await pipeline.submit_turn(session, "first")
        self.assertEqual(outcome.status, "failed")
        self.assertEqual(self.notices, [("error", "Failed to generate text: refused")])
        self.assertFalse(session.turn_in_flight)
        self.assertEqual([m.text for m in self.sessions.messages], ["first"])

        outcome = await pipeline.submit_turn(session, "retry")
        self.assertEqual(outcome.status, "completed")
        self.assertEqual([m.text for m in self.sessions.messages], ["first", "retry", "ok"])

    async def test_timeout_unlocks_session(self):
        pipeline = self.make(reply("too late"), timeout=0.01)
        self.backend.release = asyncio.Event()
        session = self.sessions.select_model("alpha")
        outcome = await pipeline.submit_turn(session, "hello")
        self.assertEqual(outcome.status, "failed")
        self.assertIn("timed out", outcome.error)
        self.assertFalse(session.turn_in_flight)
        self.assertEqual(self.notices[0][0], "error")

    async def test_stale_response_after_model_switch_is_discarded(self):
        pipeline = self.make(reply("for alpha", "cmd 1"))
        self.backend.release = asyncio.Event()
        alpha = self.sessions.select_model("alpha")
        pending = asyncio.create_task(pipeline.submit_turn(alpha, "hello"))
        await settle()

        beta = self.sessions.select_model("beta")
        self.backend.release.set()
        outcome = await pending

        self.assertEqual(outcome.status, "stale")
        self.assertEqual(self.sessions.current, beta)
        self.assertEqual(self.sessions.messages, ())
        self.assertTrue(self.gate.is_empty)
        self.assertFalse(beta.turn_in_flight)

    async def test_stale_error_is_not_reported(self):
        pipeline = self.make(GenerationError("boom"))
        self.backend.release = asyncio.Event()
        alpha = self.sessions.select_model("alpha")
        pending = asyncio.create_task(pipeline.submit_turn(alpha, "hello"))
        await settle()
        self.sessions.select_model("beta")
        self.backend.release.set()
        outcome = await pending
        self.assertEqual(outcome.status, "stale")
        self.assertEqual(self.notices, [])


if __name__ == "__main__":
    unittest.main()
