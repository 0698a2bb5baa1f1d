import asyncio

import pytest

from ielts_coach.errors import GenerationError, ParseError, SessionBusyError, StoreError, ValidationError
from ielts_coach.schemas import Part, Record
from ielts_coach.session import EditingSession, SessionState, group_by_part
from ielts_coach.stores import RecordStore

from conftest import FakeGateway, HeldGateway, sample_result


class FailingStore(RecordStore):
	async def list(self):
		raise StoreError("database unreachable")

	async def upsert(self, record):
		raise StoreError("database unreachable")

	async def remove(self, record_id):
		raise StoreError("database unreachable")


def _drafted(**kwargs):
	session = EditingSession(**kwargs)
	session.update_draft(part=Part.PART2, band=7.5, topic="Describe a book you enjoyed", idea="科幻小说,改变了我对未来的看法")
	return session


def _saved(local_store, gateway=None):
	session = _drafted()
	asyncio.run(session.generate(gateway or FakeGateway()))
	asyncio.run(session.save(local_store))
	return session


def test_states_before_generation():
	session = EditingSession()
	assert session.state is SessionState.EMPTY
	session.update_draft(topic="Hometown")
	assert session.state is SessionState.DRAFTING


def test_generate_requires_topic_and_idea():
	session = EditingSession()
	session.update_draft(topic="Hometown")
	gateway = FakeGateway()
	with pytest.raises(ValidationError):
		asyncio.run(session.generate(gateway))
	assert gateway.requests == []
	assert session.state is SessionState.DRAFTING


def test_update_draft_rejects_unknown_band():
	with pytest.raises(ValidationError):
		EditingSession().update_draft(band=5.5)


def test_first_generation_fills_both_scripts():
	session = _drafted()
	gateway = FakeGateway()
	asyncio.run(session.generate(gateway))

	assert session.state is SessionState.GENERATED_UNSAVED
	assert session.ai_script == session.personal_script == sample_result().content
	assert session.highlights[0].phrase == "pick something up on a whim"
	assert gateway.requests[0].band == 7.5
	assert gateway.requests[0].part is Part.PART2


def test_book_scenario_save_appears_first_in_list(local_store):
	asyncio.run(local_store.upsert(Record(part=Part.PART1, topic="Hometown", band=6.5, ai_script="I grew up in Chengdu.")))
	session = _drafted()
	asyncio.run(session.generate(FakeGateway()))
	assert session.state is SessionState.GENERATED_UNSAVED
	assert session.highlights and session.highlights[0].cn_meaning

	saved = asyncio.run(session.save(local_store))
	assert session.state is SessionState.GENERATED_SAVED
	assert session.record_id == saved.id
	assert asyncio.run(local_store.list())[0].id == saved.id


def test_save_then_load_round_trip(local_store):
	session = _saved(local_store)
	session.edit_personal_script("My own take on the book.")
	asyncio.run(session.save(local_store))

	stored = asyncio.run(local_store.get(session.record_id))
	fresh = EditingSession()
	fresh.load(stored)
	for field in ("part", "band", "topic", "ai_script", "personal_script", "highlights"):
		assert getattr(fresh, field) == getattr(session, field)
	assert fresh.state is SessionState.GENERATED_SAVED


def test_editing_personal_script_marks_session_dirty(local_store):
	session = _saved(local_store)
	session.edit_personal_script("Changed.")
	assert session.state is SessionState.EDITING_SAVED
	session.edit_personal_script(sample_result().content)
	assert session.state is SessionState.GENERATED_SAVED


def test_load_edit_save_updates_single_record(local_store):
	original = _saved(local_store)
	other = Record(part=Part.PART3, topic="Technology", band=8.0, ai_script="Technology is double-edged.")
	asyncio.run(local_store.upsert(other))

	session = EditingSession()
	session.load(asyncio.run(local_store.get(original.record_id)))
	session.edit_personal_script("Personal version.")
	asyncio.run(session.save(local_store))

	listed = asyncio.run(local_store.list())
	matching = [r for r in listed if r.id == original.record_id]
	assert len(matching) == 1
	assert matching[0].ai_script == original.ai_script
	assert matching[0].personal_script == "Personal version."
	assert listed[0].id == original.record_id
	assert [r.updated_at for r in listed] == sorted((r.updated_at for r in listed), reverse=True)


def test_load_keeps_idea(local_store):
	saved = _saved(local_store)
	session = EditingSession()
	session.update_draft(idea="my idea")
	session.load(asyncio.run(local_store.get(saved.record_id)))
	assert session.idea == "my idea"


def test_regeneration_keeps_personal_script(local_store):
	session = _saved(local_store)
	session.edit_personal_script("Hand-tuned answer.")
	record_id = session.record_id

	asyncio.run(session.generate(FakeGateway(sample_result("A brand new model answer."))))
	assert session.record_id == record_id
	assert session.ai_script == "A brand new model answer."
	assert session.personal_script == "Hand-tuned answer."
	assert session.state is SessionState.EDITING_SAVED


def test_failed_regeneration_preserves_saved_content(local_store, failed_generation):
	session = _saved(local_store)
	before = (session.ai_script, session.personal_script, list(session.highlights))

	with pytest.raises(GenerationError):
		asyncio.run(session.generate(FakeGateway(failed_generation)))
	assert (session.ai_script, session.personal_script, list(session.highlights)) == before
	assert session.state is SessionState.GENERATED_SAVED


def test_failed_first_generation_clears_content():
	session = _drafted()
	asyncio.run(session.generate(FakeGateway()))
	with pytest.raises(ParseError):
		asyncio.run(session.generate(FakeGateway(ParseError("not json"))))
	assert session.ai_script == "" and session.personal_script == "" and session.highlights == []
	assert session.state is SessionState.DRAFTING


def test_second_generate_is_rejected_while_outstanding():
	session = _drafted()
	gateway = HeldGateway()

	async def scenario():
		first = asyncio.create_task(session.generate(gateway))
		await asyncio.sleep(0)
		assert session.state is SessionState.GENERATING
		with pytest.raises(SessionBusyError):
			await session.generate(gateway)
		gateway.release.set()
		await first

	asyncio.run(scenario())
	assert gateway.calls == 1
	assert session.state is SessionState.GENERATED_UNSAVED


def test_edits_are_rejected_while_generating():
	session = _drafted()
	gateway = HeldGateway()

	async def scenario():
		pending = asyncio.create_task(session.generate(gateway))
		await asyncio.sleep(0)
		with pytest.raises(SessionBusyError):
			session.update_draft(topic="Describe a city you visited", part=Part.PART3)
		with pytest.raises(SessionBusyError):
			session.edit_personal_script("Mine.")
		gateway.release.set()
		await pending

	asyncio.run(scenario())
	assert session.topic == "Describe a book you enjoyed"
	assert session.part is Part.PART2
	assert session.state is SessionState.GENERATED_UNSAVED
	session.edit_personal_script("Mine.")
	assert session.personal_script == "Mine."


def test_reset_during_generation_discards_result():
	session = _drafted()
	gateway = HeldGateway()

	async def scenario():
		pending = asyncio.create_task(session.generate(gateway))
		await asyncio.sleep(0)
		session.reset()
		gateway.release.set()
		await pending

	asyncio.run(scenario())
	assert session.state is SessionState.EMPTY
	assert session.ai_script == ""


def test_save_requires_generated_content(local_store):
	session = _drafted()
	with pytest.raises(ValidationError):
		asyncio.run(session.save(local_store))
	assert asyncio.run(local_store.list()) == []


def test_failed_save_does_not_touch_session():
	session = _drafted()
	asyncio.run(session.generate(FakeGateway()))
	with pytest.raises(StoreError):
		asyncio.run(session.save(FailingStore()))
	assert session.record_id is None
	assert session.state is SessionState.GENERATED_UNSAVED


def test_deleting_current_record_resets_session(local_store):
	session = _saved(local_store)
	asyncio.run(session.delete(local_store, session.record_id))
	assert session.state is SessionState.EMPTY
	assert session.record_id is None and session.topic == "" and session.idea == ""
	assert session.part is Part.PART2
	assert asyncio.run(local_store.list()) == []


def test_deleting_other_record_leaves_session_alone(local_store):
	other = asyncio.run(local_store.upsert(Record(part=Part.PART1, topic="Hometown", band=6.5, ai_script="I grew up in Chengdu.")))
	session = _saved(local_store)
	session.edit_personal_script("Unsaved edit.")
	before = session.snapshot()

	asyncio.run(session.delete(local_store, other.id))
	assert session.snapshot() == before
	assert [r.id for r in asyncio.run(local_store.list())] == [session.record_id]


def test_failed_delete_keeps_session(local_store):
	session = _saved(local_store)
	record_id = session.record_id
	with pytest.raises(StoreError):
		asyncio.run(session.delete(FailingStore(), record_id))
	assert session.record_id == record_id


def test_group_by_part_skips_empty_parts():
	records = [
		Record(id="c", part=Part.PART3, topic="Technology", band=7.0, ai_script="x"),
		Record(id="a", part=Part.PART1, topic="Hometown", band=7.0, ai_script="x"),
		Record(id="b", part=Part.PART1, topic="Weather", band=7.0, ai_script="x"),
	]
	grouped = group_by_part(records)
	assert list(grouped) == ["Part 1", "Part 3"]
	assert [r.id for r in grouped["Part 1"]] == ["a", "b"]
