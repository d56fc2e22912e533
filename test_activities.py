import asyncio
import json
import random

from amigo.activities import (
    DEFAULT_REFLECTION_PROMPT,
    MissionBoard,
    buddy_support,
    calm_thought,
    log_mood,
    reflection_prompt,
    save_reflection,
)
from amigo.app import AmigoApp
from amigo.config import AppConfig
from amigo.decoder import SocialDecoder
from amigo.i18n import TranslationResolver
from amigo.io_state import MemoryMedium
from amigo.llm import LLMClient, OpenAILLMClient
from amigo.models import MISSION_POINTS, POINTS_PER_ACTIVITY, Mood, Profile
from amigo.profile_store import MISSION_TASK, KEYS, ProfileStore
from amigo.session import DEFAULT_SCENARIOS, SessionState, SubmitStatus


class ScriptedLLM(LLMClient):
    def __init__(self, replies):
        super().__init__()
        self.replies = list(replies)
        self.requests = []

    async def _complete(self, request):
        self.requests.append(request)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _store(**values):
    store = ProfileStore(MemoryMedium())
    store.initialize()
    for key, value in values.items():
        store.write(key, value)
    return store


def _board(store, llm):
    return MissionBoard(store, llm, TranslationResolver(), rng=random.Random(7))


def test_pending_mission_is_reused():
    store = _store(activeTasks={MISSION_TASK: "Say hi to someone new today"})
    llm = ScriptedLLM([])

    mission = asyncio.run(_board(store, llm).current())

    assert mission == "Say hi to someone new today"
    assert llm.requests == []


def test_new_mission_is_generated_and_kept():
    store = _store(userName="Mia", birthInfo=11)
    llm = ScriptedLLM(["  Give a classmate a compliment today.  "])

    mission = asyncio.run(_board(store, llm).current())

    assert mission == "Give a classmate a compliment today."
    assert store.active_task(MISSION_TASK) == mission
    assert "11 years old" in llm.requests[0].new_message


def test_force_refresh_replaces_pending_mission():
    store = _store(activeTasks={MISSION_TASK: "old mission"})
    llm = ScriptedLLM(["new mission"])

    assert asyncio.run(_board(store, llm).current(force_refresh=True)) == "new mission"
    assert store.active_task(MISSION_TASK) == "new mission"


def test_mission_falls_back_when_generation_fails():
    store = _store()
    llm = ScriptedLLM([ConnectionError("offline")])

    mission = asyncio.run(_board(store, llm).current())

    assert mission == "Give someone a high-five today!"
    assert store.active_task(MISSION_TASK) == mission


def test_completing_a_mission_credits_once():
    store = _store(activeTasks={MISSION_TASK: "Hold the door for someone"})
    board = _board(store, ScriptedLLM([]))

    assert board.complete() == MISSION_POINTS
    assert board.complete() == 0
    assert store.ledger.get("missions") == MISSION_POINTS
    assert store.active_task(MISSION_TASK) is None


def test_log_mood_records_entry_and_points():
    store = _store()

    entry = log_mood(store, [Mood.WORRIED, Mood.TIRED], "  big test tomorrow ")

    assert store.read("moodHistory") == (entry,)
    assert entry.note == "big test tomorrow"
    assert store.ledger.get("mood-check") == POINTS_PER_ACTIVITY
    assert log_mood(store, []) is None
    assert len(store.read("moodHistory")) == 1


def test_buddy_support_and_calm_thought_fall_back():
    store = _store()
    entry = log_mood(store, [Mood.SAD])
    llm = ScriptedLLM([RuntimeError("down"), RuntimeError("down")])
    translator = TranslationResolver()
    profile = Profile(user_name="Mia", birth_info=9)

    support = asyncio.run(buddy_support(llm, translator, profile, entry))
    thought = asyncio.run(calm_thought(llm, translator, profile))

    assert support.startswith("Thank you for telling me")
    assert thought == "Focus on the present moment."


def test_decoder_parses_structured_reply():
    payload = {
        "insights": [{"label": "Their side", "text": "They might be busy.", "icon": "🤔"}],
        "victory": "You noticed the signals. That is a win!",
    }
    llm = ScriptedLLM([json.dumps(payload)])
    decoder = SocialDecoder(llm, TranslationResolver(), profile_source=lambda: Profile(user_name="Mia"))

    result = asyncio.run(decoder.decode("My friend didn't answer my message."))

    assert result.victory == payload["victory"]
    assert result.insights[0].label == "Their side"
    assert llm.requests[0].response_schema is not None
    assert not decoder.busy


def test_decoder_schema_mismatch_is_a_failed_request():
    llm = ScriptedLLM(['{"insights": []}', "not json at all"])
    decoder = SocialDecoder(llm, TranslationResolver())

    assert asyncio.run(decoder.decode("Someone laughed at me")) is None
    assert asyncio.run(decoder.decode("Someone laughed at me")) is None
    assert asyncio.run(decoder.decode("   ")) is None
    assert len(llm.requests) == 2
    assert decoder.retry_message() == "Please try again in a moment."


def _app(llm):
    return AmigoApp(config=AppConfig(), medium=MemoryMedium(), llm_client=llm)


def test_app_reset_is_idempotent():
    app = _app(ScriptedLLM(["Hey!"]))

    async def run():
        await app.start()
        app.store.write("userName", "Mia")
        await app.sessions.start(DEFAULT_SCENARIOS[0])
        log_mood(app.store, [Mood.HAPPY])

    asyncio.run(run())
    session = app.sessions.session

    app.reset_app()
    app.reset_app()

    assert session.state is SessionState.IDLE
    assert app.sessions.session is None
    for name, spec in KEYS.items():
        assert app.store.read(name) == spec.default()
    assert app.mood_chart() == []


def test_app_switches_language_from_user_text():
    app = _app(ScriptedLLM([]))

    async def run():
        await app.start()
        before = app.translator.resolve("home.decoder")
        switched = await app.note_user_text("Здраво Амиго!")
        again = await app.note_user_text("Како си?")
        return before, switched, again

    before, switched, again = asyncio.run(run())

    assert before == "Decoder"
    assert switched == "mk"
    assert again is None
    assert app.store.read("language") == "mk"
    assert app.translator.resolve("home.decoder") == "Декодер"


def test_reflection_prompt_comes_from_the_locale_pool():
    translator = TranslationResolver()

    async def run():
        await translator.activate("en")
        await translator.activate("mk")
        return (
            reflection_prompt(translator, rng=random.Random(3)),
            reflection_prompt(translator, rng=random.Random(3), language="mk"),
        )

    english, macedonian = asyncio.run(run())
    pool = translator.resolve_list("reflections_screen.prompts")

    assert english in pool
    assert macedonian in translator.resolve_list("reflections_screen.prompts", language="mk")
    assert reflection_prompt(TranslationResolver(), rng=random.Random(3)) == DEFAULT_REFLECTION_PROMPT


def test_save_reflection_journals_the_answer():
    store = _store()

    entry = save_reflection(store, "Who made you smile today?", "  My sister  ")

    assert store.read("reflections") == (entry,)
    assert entry.text == "My sister"
    assert entry.category == "general"
    assert save_reflection(store, "Who made you smile today?", "   ") is None
    assert len(store.read("reflections")) == 1
    assert store.ledger.total == 0


def test_app_without_api_key_uses_scripted_fallbacks():
    app = AmigoApp(config=AppConfig(api_key_present=False), medium=MemoryMedium())

    async def run():
        await app.start()
        app.store.write("userName", "Mia")
        return await app.sessions.start(DEFAULT_SCENARIOS[0])

    session = asyncio.run(run())

    assert not isinstance(app.llm, OpenAILLMClient)
    assert session.state is SessionState.ACTIVE_TURN
    assert session.degraded_start
    assert session.transcript[0].text == "Hey Mia, what's up?"


def test_dummy_client_drives_a_full_practice_session():
    app = _app(LLMClient.dummy())

    async def run():
        await app.start()
        session = await app.sessions.start(DEFAULT_SCENARIOS[1])
        statuses = [await app.sessions.submit_user_turn(f"turn {i}") for i in range(3)]
        return session, statuses

    session, statuses = asyncio.run(run())

    assert statuses == [SubmitStatus.ACCEPTED] * 3
    assert session.state is SessionState.COMPLETED
    assert app.store.ledger.get("practice") == 20
