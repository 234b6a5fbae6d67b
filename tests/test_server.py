"""Unit tests for parla server adapters."""

import asyncio
import base64
import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

from core.interfaces import VocabularyStoreError
from core.models import WordRecord, ProficientRecord
from server.file_storage import FileStorage
from server.review_scheduler import AsyncioReviewScheduler
from server.speech import QueuedSpeechSynthesizer
from server.stubs import StubSpeechRecognizer, StubTutor

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


def make_record(word, language='es', due_in_hours=1):
    return WordRecord(
        word, language, severity=2, retries_needed=1, ease_factor=2.0,
        current_interval_hours=3,
        next_review_at=NOW + timedelta(hours=due_in_hours),
        last_reviewed_at=NOW - timedelta(hours=2)
    )


class TestFileStorage(unittest.TestCase):
    """Tests for FileStorage."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.storage = FileStorage(state_dir=self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_find_missing(self):
        self.assertIsNone(self.storage.find_struggling('hola', 'es'))

    def test_save_and_find(self):
        self.storage.save_struggling(make_record('hola'))
        record = self.storage.find_struggling('hola', 'es')
        self.assertEqual(record.severity, 2)
        self.assertEqual(record.next_review_at, NOW + timedelta(hours=1))
        self.assertIsNone(self.storage.find_struggling('hola', 'pt'))

    def test_save_updates_existing(self):
        record = make_record('hola')
        self.storage.save_struggling(record)
        record.severity = 3
        self.storage.save_struggling(record)
        self.assertEqual(self.storage.find_struggling('hola', 'es').severity, 3)
        self.assertEqual(len(self.storage.list_struggling('es')), 1)

    def test_promote_moves_record(self):
        record = make_record('gato')
        self.storage.save_struggling(record)
        self.storage.promote(record, ProficientRecord('gato', 'es', NOW))
        self.assertIsNone(self.storage.find_struggling('gato', 'es'))
        proficient = self.storage.list_proficient('es')
        self.assertEqual(len(proficient), 1)
        self.assertEqual(proficient[0].mastered_at, NOW)

    def test_list_due(self):
        self.storage.save_struggling(make_record('hola', due_in_hours=-1))
        self.storage.save_struggling(make_record('gato', due_in_hours=2))
        self.storage.save_struggling(make_record('casa', language='pt', due_in_hours=-1))
        self.assertEqual(sorted(r.word for r in self.storage.list_due(NOW)), ['casa', 'hola'])
        self.assertEqual([r.word for r in self.storage.list_due(NOW, 'es')], ['hola'])

    def test_persists_across_instances(self):
        self.storage.save_struggling(make_record('hola'))
        other = FileStorage(state_dir=self.tmp.name)
        self.assertIsNotNone(other.find_struggling('hola', 'es'))

    def test_corrupt_file_raises_store_error(self):
        with open(os.path.join(self.tmp.name, 'parla_vocabulary.json'), 'w') as f:
            f.write('{not json')
        with self.assertRaises(VocabularyStoreError):
            self.storage.find_struggling('hola', 'es')


class TestAsyncioReviewScheduler(unittest.IsolatedAsyncioTestCase):
    """Tests for AsyncioReviewScheduler."""

    async def asyncSetUp(self):
        self.fired = []
        self.scheduler = AsyncioReviewScheduler(asyncio.get_running_loop(), self.fired.append)

    async def asyncTearDown(self):
        self.scheduler.cancel_all()

    async def test_fires_after_delay(self):
        self.scheduler.enqueue_unique_review('hola', 0, {'word': 'hola', 'language': 'es'})
        await asyncio.sleep(0.05)
        self.assertEqual(self.fired, [{'word': 'hola', 'language': 'es'}])
        self.assertEqual(self.scheduler.pending(), [])

    async def test_replaces_pending_job(self):
        self.scheduler.enqueue_unique_review('hola', 60, {'attempt': 1})
        self.scheduler.enqueue_unique_review('hola', 0, {'attempt': 2})
        await asyncio.sleep(0.05)
        self.assertEqual(self.fired, [{'attempt': 2}])

    async def test_pending_lists_jobs(self):
        self.scheduler.enqueue_unique_review('perro', 60, {})
        self.scheduler.enqueue_unique_review('gato', 60, {})
        await asyncio.sleep(0)
        self.assertEqual(self.scheduler.pending(), ['review_gato', 'review_perro'])

    async def test_callback_error_is_contained(self):
        def broken(payload):
            raise RuntimeError("boom")
        scheduler = AsyncioReviewScheduler(asyncio.get_running_loop(), broken)
        scheduler.enqueue_unique_review('hola', 0, {})
        await asyncio.sleep(0.05)
        self.assertEqual(scheduler.pending(), [])


class TestQueuedSpeechSynthesizer(unittest.TestCase):

    def test_drain_returns_and_clears(self):
        tts = QueuedSpeechSynthesizer()
        tts.speak("Hola")
        tts.speak_in_language("Let me switch to English", 'en')
        self.assertEqual(tts.drain(), [
            {'text': 'Hola', 'language': None},
            {'text': 'Let me switch to English', 'language': 'en'}
        ])
        self.assertEqual(tts.drain(), [])


class TestStubs(unittest.TestCase):

    def test_short_audio_is_silence(self):
        asr = StubSpeechRecognizer()
        self.assertIsNone(asr.transcribe(b'\x00' * 10))
        self.assertEqual(asr.transcribe(b'\x00' * 2000), 'test utterance')

    def test_tutor_fail_keyword(self):
        tutor = StubTutor()
        self.assertEqual(tutor.respond("User: fail"), "I didn't understand. Let's try again.")
        self.assertEqual(tutor.respond("User: hola"), "That's great!")


class TestGeminiSpeechRecognizer(unittest.TestCase):
    """Tests for GeminiSpeechRecognizer response parsing."""

    def make_provider(self):
        from server.gemini_provider import GeminiSpeechRecognizer
        # Create provider without connecting
        provider = GeminiSpeechRecognizer.__new__(GeminiSpeechRecognizer)
        provider.language = 'es'
        provider.mime_type = 'audio/wav'
        provider._last_guess = None
        provider.stats = {'calls': 0, 'errors': 0, 'total_ms': 0}
        return provider

    def test_valid_transcript(self):
        provider = self.make_provider()
        response = "{'transcript': 'Hola, ¿qué tal?', 'best_guess': 'Hola, ¿qué tal?'}"
        with patch.object(provider, '_execute', return_value=(response, 80)):
            self.assertEqual(provider.transcribe(b'audio'), 'Hola, ¿qué tal?')

    def test_unclear_speech_keeps_best_guess(self):
        provider = self.make_provider()
        response = "```python\n{'transcript': null, 'best_guess': 'buenas noches'}\n```"
        with patch.object(provider, '_execute', return_value=(response, 80)):
            self.assertIsNone(provider.transcribe(b'audio'))
        self.assertEqual(provider.suggest_correction(), 'buenas noches')

    def test_malformed_response(self):
        provider = self.make_provider()
        with patch.object(provider, '_execute', return_value=("I could not hear anything", 80)):
            self.assertIsNone(provider.transcribe(b'audio'))
        self.assertIsNone(provider.suggest_correction())

    def test_request_error(self):
        provider = self.make_provider()
        with patch.object(provider, '_execute', side_effect=RuntimeError("quota exceeded")):
            self.assertIsNone(provider.transcribe(b'audio'))

    def test_empty_audio_skips_request(self):
        provider = self.make_provider()
        with patch.object(provider, '_execute') as execute:
            self.assertIsNone(provider.transcribe(b''))
        execute.assert_not_called()


class TestGeminiTutor(unittest.TestCase):
    """Tests for GeminiTutor prompts."""

    def make_provider(self):
        from server.gemini_provider import GeminiTutor
        provider = GeminiTutor.__new__(GeminiTutor)
        provider.stats = {'calls': 0, 'errors': 0, 'total_ms': 0}
        return provider

    def test_respond_strips_reply(self):
        provider = self.make_provider()
        with patch.object(provider, '_execute', return_value=("  ¡Hola! ¿Cómo estás?\n", 120)) as execute:
            reply = provider.respond("User: hola")
        self.assertEqual(reply, "¡Hola! ¿Cómo estás?")
        self.assertIn("User: hola", execute.call_args[0][0])

    def test_native_language_prompt(self):
        provider = self.make_provider()
        with patch.object(provider, '_execute', return_value=("Let's try again.", 120)) as execute:
            provider.respond_in_native_language("User: no sé", 'en')
        self.assertIn("Reply in English", execute.call_args[0][0])

    def test_get_stats(self):
        provider = self.make_provider()
        provider.model_name = 'gemini-2.0-flash'
        provider._record_stats(100)
        provider._record_stats(300)
        self.assertEqual(provider.get_stats()['avg_ms'], 200)


class TestApp(unittest.TestCase):
    """End-to-end tests of the HTTP API with stub AI and file storage."""

    @classmethod
    def setUpClass(cls):
        from fastapi.testclient import TestClient
        cls.tmp = tempfile.TemporaryDirectory()
        cls.env = patch.dict(os.environ, {
            'PARLA_STORAGE': 'file',
            'PARLA_AI': 'stub',
            'PARLA_STATE_DIR': cls.tmp.name
        })
        cls.env.start()
        from server.app import app
        cls.client_cm = TestClient(app)
        cls.client = cls.client_cm.__enter__()

    @classmethod
    def tearDownClass(cls):
        cls.client_cm.__exit__(None, None, None)
        cls.env.stop()
        cls.tmp.cleanup()

    def start(self, **body):
        response = self.client.post('/api/conversations', json=body)
        self.assertEqual(response.status_code, 200)
        return response.json()

    def test_health(self):
        self.assertEqual(self.client.get('/').json()['service'], 'parla')

    def test_text_turn(self):
        conversation = self.start(contact={'name': 'Lucía', 'hometown': 'Sevilla'})
        response = self.client.post(
            f"/api/conversations/{conversation['conversation_id']}/text", json={'text': 'hola'}
        )
        self.assertEqual(response.status_code, 200)
        turn = response.json()
        self.assertFalse(turn['failed'])
        self.assertEqual(turn['spoken'], [{'text': "That's great!", 'language': None}])
        self.assertEqual(turn['escalation_level'], 'normal')

    def test_silent_audio_escalates(self):
        conversation = self.start()
        url = f"/api/conversations/{conversation['conversation_id']}/speech"
        audio = base64.b64encode(b'\x00' * 10).decode('ascii')
        levels = []
        for _ in range(4):
            turn = self.client.post(url, json={'audio_base64': audio}).json()
            self.assertTrue(turn['failed'])
            levels.append(turn['escalation_level'])
        self.assertEqual(levels, ['clarify', 'rephrase', 'native_fallback', 'native_fallback'])
        self.assertEqual(turn['spoken'][0]['language'], 'en')
        self.assertTrue(turn['fallback_active'])

    def test_invalid_audio(self):
        conversation = self.start()
        response = self.client.post(
            f"/api/conversations/{conversation['conversation_id']}/speech",
            json={'audio_base64': '***'}
        )
        self.assertEqual(response.status_code, 400)

    def test_unknown_conversation(self):
        response = self.client.post('/api/conversations/nope/text', json={'text': 'hola'})
        self.assertEqual(response.status_code, 404)

    def test_struggling_word_promoted_through_conversation(self):
        marked = self.client.post('/api/vocabulary/struggling', json={'word': 'Gato', 'language': 'es'})
        self.assertEqual(marked.status_code, 200)
        self.assertEqual(marked.json()['severity'], 1)

        conversation = self.start(target_language='es')
        turn = self.client.post(
            f"/api/conversations/{conversation['conversation_id']}/text", json={'text': 'Mi gato duerme.'}
        ).json()
        self.assertEqual(turn['vocabulary']['corrected'], [{'word': 'gato', 'severity': 0, 'promoted': True}])

        proficient = self.client.get('/api/vocabulary/proficient', params={'language': 'es'}).json()
        self.assertIn('gato', [w['word'] for w in proficient['words']])
        struggling = self.client.get('/api/vocabulary/struggling', params={'language': 'es'}).json()
        self.assertNotIn('gato', [w['word'] for w in struggling['words']])

    def test_mark_struggling_rejects_phrase(self):
        response = self.client.post('/api/vocabulary/struggling', json={'word': 'buenas noches'})
        self.assertEqual(response.status_code, 400)

    def test_reviews_empty_when_nothing_due(self):
        self.client.post('/api/vocabulary/struggling', json={'word': 'perro', 'language': 'de'})
        response = self.client.get('/api/reviews', params={'language': 'de'})
        self.assertEqual(response.json(), {'words': []})

    def test_end_conversation(self):
        conversation = self.start()
        conversation_id = conversation['conversation_id']
        self.assertEqual(self.client.delete(f"/api/conversations/{conversation_id}").json(), {'success': True})
        self.assertEqual(self.client.get(f"/api/conversations/{conversation_id}").status_code, 404)

    def test_failed_turn_reports_message(self):
        conversation = self.start()
        turn = self.client.post(
            f"/api/conversations/{conversation['conversation_id']}/text", json={'text': '   '}
        ).json()
        self.assertTrue(turn['failed'])
        self.assertEqual(turn['escalation_message'], "I didn't catch that. Could you rephrase?")

    def test_get_conversation_reports_history(self):
        conversation = self.start()
        conversation_id = conversation['conversation_id']
        self.client.post(f"/api/conversations/{conversation_id}/text", json={'text': 'hola'})
        state = self.client.get(f"/api/conversations/{conversation_id}").json()
        self.assertEqual(state['history'], ['User: hola', "AI: That's great!"])
        self.assertEqual(state['escalation_level'], 'normal')
        self.assertFalse(state['fallback_active'])

    def test_idle_conversation_evicted(self):
        from server import app as app_module
        conversation_id = self.start()['conversation_id']
        session = app_module.conversations[conversation_id]
        session.last_active -= app_module.SESSION_IDLE_TIMEOUT + 1

        self.assertIn(conversation_id, app_module.evict_idle_sessions())
        self.assertTrue(session.closed)
        self.assertEqual(self.client.get(f"/api/conversations/{conversation_id}").status_code, 404)
        response = self.client.post(f"/api/conversations/{conversation_id}/text", json={'text': 'hola'})
        self.assertEqual(response.status_code, 404)

    def test_active_conversation_not_evicted(self):
        from server import app as app_module
        conversation_id = self.start()['conversation_id']
        self.assertNotIn(conversation_id, app_module.evict_idle_sessions())
        self.assertEqual(self.client.get(f"/api/conversations/{conversation_id}").status_code, 200)


class TestSessionLifecycle(unittest.IsolatedAsyncioTestCase):
    """Hang-up and eviction against turns waiting on the conversation lock."""

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.env = patch.dict(os.environ, {
            'PARLA_STORAGE': 'file',
            'PARLA_AI': 'stub',
            'PARLA_STATE_DIR': self.tmp.name
        })
        self.env.start()
        from server import app as app_module
        self.app = app_module
        await self.app.startup()
        self.session = self.app.new_session({
            'contact': None, 'target_language': None, 'native_language': None
        })
        self.conversation_id = self.session.state.conversation_id

    async def asyncTearDown(self):
        await self.app.shutdown()
        self.app.conversations.clear()
        self.env.stop()
        self.tmp.cleanup()

    async def test_turn_waiting_behind_hang_up_is_rejected(self):
        from fastapi import HTTPException

        await self.session.lock.acquire()
        hang_up = asyncio.create_task(self.app.end_conversation(self.conversation_id))
        await asyncio.sleep(0)
        turn = asyncio.create_task(
            self.app.run_turn(self.session, self.session.orchestrator.handle_user_text, 'hola')
        )
        await asyncio.sleep(0)
        self.session.lock.release()

        self.assertEqual(await hang_up, {'success': True})
        with self.assertRaises(HTTPException) as ctx:
            await turn
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(self.session.state.history, [])
        self.assertEqual(self.session.synthesizer.drain(), [])

    async def test_busy_conversation_not_evicted(self):
        self.session.last_active -= self.app.SESSION_IDLE_TIMEOUT + 1
        async with self.session.lock:
            self.assertEqual(self.app.evict_idle_sessions(), [])
        self.assertFalse(self.session.closed)
        self.assertEqual(self.app.evict_idle_sessions(), [self.conversation_id])

    async def test_second_hang_up_is_not_found(self):
        from fastapi import HTTPException

        await self.app.end_conversation(self.conversation_id)
        with self.assertRaises(HTTPException) as ctx:
            await self.app.end_conversation(self.conversation_id)
        self.assertEqual(ctx.exception.status_code, 404)


class TestParlaAPIClient(unittest.TestCase):

    def test_send_audio_posts_base64(self):
        from cli.api_client import ParlaAPIClient

        client = ParlaAPIClient('http://parla.test/')
        client.session = Mock()
        client.session.post.return_value.json.return_value = {'failed': False}

        self.assertEqual(client.send_audio('abc123', b'RIFF\x00\x01'), {'failed': False})
        client.session.post.assert_called_once_with(
            'http://parla.test/api/conversations/abc123/speech',
            json={'audio_base64': base64.b64encode(b'RIFF\x00\x01').decode('ascii')}
        )


if __name__ == '__main__':
    unittest.main()
