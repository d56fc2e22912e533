import asyncio
import json

from amigo.errors import PersistenceUnavailable
from amigo.io_state import JsonFileMedium, MemoryMedium
from amigo.models import Mood, MoodEntry, ReflectionEntry, StoryEntry
from amigo.profile_store import KEYS, MISSION_TASK, ProfileStore


class BrokenMedium(MemoryMedium):
    """Reads work, every write fails (quota exceeded, private browsing...)."""

    def set(self, key, value):
        raise PersistenceUnavailable("quota exceeded")


class UnreadableMedium(MemoryMedium):
    def get(self, key):
        raise PersistenceUnavailable("storage disabled")

    def clear(self):
        raise PersistenceUnavailable("storage disabled")


def _defaults():
    return {name: spec.default() for name, spec in KEYS.items()}


def test_initialize_resets_only_malformed_keys():
    medium = MemoryMedium({
        "userName": json.dumps("Mia"),
        "birthInfo": json.dumps("2014-03-02"),
        "moodHistory": "{not json",
        "language": json.dumps("klingon"),
        "progress": json.dumps({"practice": 40}),
    })
    store = ProfileStore(medium)
    store.initialize()

    assert store.read("userName") == "Mia"
    assert store.read("birthInfo") == "2014-03-02"
    assert store.read("moodHistory") == ()
    assert store.read("language") is None
    assert store.malformed_keys == {"moodHistory", "language"}
    assert store.ledger.get("practice") == 40
    assert not store.persistence_degraded


def test_history_with_bad_entry_falls_back_to_default():
    good = MoodEntry(moods=(Mood.HAPPY,), date="2024-05-01T10:00:00+00:00").to_dict()
    medium = MemoryMedium({
        "moodHistory": json.dumps([good, {"moods": ["Bored"], "date": "2024-05-02"}]),
        "reflections": json.dumps([{"prompt": "Best part?", "text": "Recess", "date": "2024-05-01"}]),
    })
    store = ProfileStore(medium)
    store.initialize()

    assert store.read("moodHistory") == ()
    assert store.read("reflections")[0].text == "Recess"


def test_history_items_that_are_not_objects_fall_back_to_default():
    medium = MemoryMedium({
        "moodHistory": json.dumps(["oops"]),
        "stories": json.dumps([None]),
        "userName": json.dumps("Mia"),
    })
    store = ProfileStore(medium)
    store.initialize()

    assert store.read("moodHistory") == ()
    assert store.read("stories") == ()
    assert store.read("userName") == "Mia"
    assert store.malformed_keys == {"moodHistory", "stories"}


def test_history_with_non_string_date_falls_back_and_journal_still_sorts():
    good = MoodEntry(moods=(Mood.HAPPY,), date="2024-05-01T10:00:00+00:00")
    medium = MemoryMedium({
        "moodHistory": json.dumps([good.to_dict()]),
        "reflections": json.dumps([{"prompt": "p", "text": "t", "date": 5}]),
    })
    store = ProfileStore(medium)
    store.initialize()

    assert store.read("reflections") == ()
    assert store.malformed_keys == {"reflections"}
    assert store.journal() == [good]


def test_write_survives_unavailable_medium():
    store = ProfileStore(BrokenMedium())
    store.initialize()

    store.write("userName", "Mia")

    assert store.read("userName") == "Mia"
    assert store.persistence_degraded
    assert store.is_degraded("userName")
    assert not store.is_degraded("language")


def test_unreadable_medium_starts_with_defaults():
    store = ProfileStore(UnreadableMedium())
    store.initialize()

    for name, default in _defaults().items():
        assert store.read(name) == default
    assert store.persistence_degraded

    store.reset_all()
    store.write("language", "mk")
    assert store.read("language") == "mk"


def test_reset_all_restores_defaults_and_notifies():
    medium = MemoryMedium()
    store = ProfileStore(medium)
    store.initialize()
    seen = []
    store.subscribe(seen.append)

    store.write("userName", "Mia")
    store.write("language", "mk")
    store.set_active_task(MISSION_TASK, "Say hi to someone new")
    store.add_mood(MoodEntry(moods=(Mood.SAD,)))
    store.ledger.add("practice", 20)
    seen.clear()

    store.reset_all()
    store.reset_all()

    for name, default in _defaults().items():
        assert store.read(name) == default
    assert store.ledger.total == 0
    assert medium.data == {}
    assert set(seen) == set(KEYS)


def test_unsubscribe_stops_notifications():
    store = ProfileStore(MemoryMedium())
    seen = []
    unsubscribe = store.subscribe(seen.append)

    store.write("userName", "Mia")
    unsubscribe()
    store.write("userName", "Ana")

    assert seen == ["userName"]


def test_failing_observer_does_not_break_writes():
    store = ProfileStore(MemoryMedium())
    seen = []

    def broken(key):
        raise RuntimeError("render failed")

    store.subscribe(broken)
    store.subscribe(seen.append)
    store.write("userName", "Mia")

    assert store.read("userName") == "Mia"
    assert seen == ["userName"]


def test_writes_reach_the_medium_after_the_loop_turns():
    medium = MemoryMedium()
    store = ProfileStore(medium)
    store.initialize()

    async def run():
        store.write("userName", "Mia")
        immediate = (store.read("userName"), medium.get("userName"))
        await asyncio.sleep(0)
        return immediate, medium.get("userName")

    immediate, later = asyncio.run(run())

    assert immediate == ("Mia", None)
    assert json.loads(later) == "Mia"


def test_reset_drops_writes_not_yet_persisted():
    medium = MemoryMedium()
    store = ProfileStore(medium)

    async def run():
        store.write("userName", "Mia")
        store.reset_all()
        await asyncio.sleep(0)

    asyncio.run(run())

    assert medium.data == {}
    assert store.read("userName") is None


def test_json_file_medium_round_trip(tmp_path):
    root = tmp_path / "amigo"
    store = ProfileStore(JsonFileMedium(root))
    store.initialize()

    store.write("userName", "Mia")
    store.write("birthInfo", 11)
    store.add_reflection(ReflectionEntry(prompt="Best part?", text="Recess", date="2024-05-01T09:00:00+00:00"))
    store.set_active_task(MISSION_TASK, "Give a compliment")
    store.ledger.add("missions", 15)

    reloaded = ProfileStore(JsonFileMedium(root))
    reloaded.initialize()

    assert reloaded.read("userName") == "Mia"
    assert reloaded.profile().age == 11
    assert reloaded.read("reflections")[0].text == "Recess"
    assert reloaded.active_task(MISSION_TASK) == "Give a compliment"
    assert reloaded.ledger.get("missions") == 15
    assert (root / "userName.json").exists()


def test_json_file_medium_corrupt_file(tmp_path):
    root = tmp_path / "amigo"
    root.mkdir()
    (root / "stories.json").write_text("[{]", encoding="utf-8")
    (root / "userName.json").write_text('"Mia"', encoding="utf-8")

    store = ProfileStore(JsonFileMedium(root))
    store.initialize()

    assert store.read("stories") == ()
    assert store.read("userName") == "Mia"
    assert store.malformed_keys == {"stories"}


def test_json_file_medium_non_utf8_file_is_reset_and_rewritten(tmp_path):
    root = tmp_path / "amigo"
    root.mkdir()
    (root / "userName.json").write_bytes(b"\xff\xfe")

    store = ProfileStore(JsonFileMedium(root))
    store.initialize()

    assert store.read("userName") is None
    assert store.malformed_keys == {"userName"}
    assert not store.is_degraded("userName")

    store.write("userName", "Mia")
    store.flush()

    assert json.loads((root / "userName.json").read_text(encoding="utf-8")) == "Mia"


def test_histories_are_newest_first_and_journal_combines():
    store = ProfileStore(MemoryMedium())
    first = MoodEntry(moods=(Mood.HAPPY,), date="2024-05-01T08:00:00+00:00")
    second = MoodEntry(moods=(Mood.TIRED, Mood.SAD), date="2024-05-02T08:00:00+00:00")
    story = StoryEntry(title="The brave fox", content=("Once...",), date="2024-05-01T12:00:00+00:00")

    store.add_mood(first)
    store.add_mood(second)
    store.add_story(story)

    assert store.read("moodHistory") == (second, first)
    assert store.journal() == [second, story, first]


def test_profile_derives_age_group_from_birth_info():
    store = ProfileStore(MemoryMedium())
    store.write("userName", "Mia")
    store.write("birthInfo", "12")

    profile = store.profile()

    assert profile.age == 12
    assert profile.age_group == "10-12"
    assert store.profile().age_group == profile.age_group
