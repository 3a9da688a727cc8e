"""Tests for batch set writes, write-intent sequencing and notes."""
import asyncio

import pytest
import pytest_asyncio

from coachboard.errors import InvalidInput, NotFound
from coachboard.models import SetWriteSequence
from coachboard.schemas import SetEntry
from coachboard.services.sets import get_note, get_sets, save_note, save_sets, set_record_id
from coachboard.services.workouts import create_workout


@pytest.fixture
def entries():
    def build(*completed, reps="5"):
        return [SetEntry(set=i + 1, weight="100", reps=reps, completed=c) for i, c in enumerate(completed)]
    return build


@pytest_asyncio.fixture
async def bench(session, roster, single_exercise_spec):
    workout = await create_workout(session, single_exercise_spec.model_copy(update={"athlete_id": roster["x"]}))
    return workout.id, workout.blocks[0].exercises[0].id, roster["x"]


class TestSaveSets:
    @pytest.mark.asyncio
    async def test_full_replace_drops_missing_sets(self, session, bench, entries):
        workout_id, exercise_id, athlete_id = bench

        await save_sets(session, workout_id, exercise_id, athlete_id, entries(True, False, False, False))
        await save_sets(session, workout_id, exercise_id, athlete_id, entries(True, True))

        records = await get_sets(session, workout_id, exercise_id, athlete_id)
        assert [(r.set_number, r.completed) for r in records] == [(1, True), (2, True)]
        assert records[0].id == set_record_id(exercise_id, athlete_id, 1)

    @pytest.mark.asyncio
    async def test_empty_batch_clears_sets(self, session, bench, entries):
        workout_id, exercise_id, athlete_id = bench
        await save_sets(session, workout_id, exercise_id, athlete_id, entries(True))

        result = await save_sets(session, workout_id, exercise_id, athlete_id, [])

        assert result.applied is True
        assert await get_sets(session, workout_id, exercise_id, athlete_id) == []

    @pytest.mark.asyncio
    async def test_completed_at_stamped_only_on_transition(self, session, bench, entries):
        workout_id, exercise_id, athlete_id = bench

        await save_sets(session, workout_id, exercise_id, athlete_id, entries(True, False))
        first = (await get_sets(session, workout_id, exercise_id, athlete_id))[0].completed_at
        assert first is not None

        # Editing reps on an already completed set keeps its timestamp
        await save_sets(session, workout_id, exercise_id, athlete_id, entries(True, False, reps="6"))
        records = await get_sets(session, workout_id, exercise_id, athlete_id)
        assert records[0].completed_at == first
        assert records[0].reps == "6"
        assert records[1].completed_at is None

        await save_sets(session, workout_id, exercise_id, athlete_id, entries(False, False))
        records = await get_sets(session, workout_id, exercise_id, athlete_id)
        assert records[0].completed_at is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("numbers", [[0, 1], [1, 3], [1, 1], [2]])
    async def test_non_contiguous_set_numbers_rejected(self, session, bench, numbers):
        workout_id, exercise_id, athlete_id = bench
        sets = [SetEntry(set=n) for n in numbers]

        with pytest.raises(InvalidInput):
            await save_sets(session, workout_id, exercise_id, athlete_id, sets)
        assert await get_sets(session, workout_id, exercise_id, athlete_id) == []

    @pytest.mark.asyncio
    async def test_unordered_but_contiguous_is_accepted(self, session, bench):
        workout_id, exercise_id, athlete_id = bench
        sets = [SetEntry(set=2, completed=True), SetEntry(set=1)]

        await save_sets(session, workout_id, exercise_id, athlete_id, sets)

        records = await get_sets(session, workout_id, exercise_id, athlete_id)
        assert [(r.set_number, r.completed) for r in records] == [(1, False), (2, True)]

    @pytest.mark.asyncio
    async def test_unknown_references(self, session, bench, roster, single_exercise_spec, entries):
        workout_id, exercise_id, athlete_id = bench
        other = await create_workout(session, single_exercise_spec.model_copy(update={"athlete_id": roster["y"]}))

        with pytest.raises(NotFound):
            await save_sets(session, "missing", exercise_id, athlete_id, entries(True))
        with pytest.raises(NotFound):
            await save_sets(session, workout_id, "missing", athlete_id, entries(True))
        with pytest.raises(NotFound):
            await save_sets(session, workout_id, other.blocks[0].exercises[0].id, athlete_id, entries(True))
        with pytest.raises(NotFound):
            await save_sets(session, workout_id, exercise_id, "ghost", entries(True))


class TestWriteSequence:
    @pytest.mark.asyncio
    async def test_older_write_is_ignored(self, session, bench, entries):
        workout_id, exercise_id, athlete_id = bench

        explicit = await save_sets(session, workout_id, exercise_id, athlete_id, entries(True, True, True), sequence=5)
        debounced = await save_sets(session, workout_id, exercise_id, athlete_id, entries(False, False, False), sequence=4)

        assert explicit.applied is True and explicit.workout_complete is True
        assert debounced.applied is False
        assert debounced.workout_complete is True
        records = await get_sets(session, workout_id, exercise_id, athlete_id)
        assert all(r.completed for r in records)

    @pytest.mark.asyncio
    async def test_same_or_newer_sequence_applies(self, session, bench, entries):
        workout_id, exercise_id, athlete_id = bench

        await save_sets(session, workout_id, exercise_id, athlete_id, entries(True), sequence=3)
        same = await save_sets(session, workout_id, exercise_id, athlete_id, entries(False), sequence=3)
        newer = await save_sets(session, workout_id, exercise_id, athlete_id, entries(True, False), sequence=9)

        assert same.applied and newer.applied
        assert len(await get_sets(session, workout_id, exercise_id, athlete_id)) == 2

    @pytest.mark.asyncio
    async def test_first_sequenced_write_claims_token(self, session, bench, entries):
        workout_id, exercise_id, athlete_id = bench

        first = await save_sets(session, workout_id, exercise_id, athlete_id, entries(True), sequence=7)
        older = await save_sets(session, workout_id, exercise_id, athlete_id, entries(False), sequence=6)

        assert first.applied is True and older.applied is False
        token = await session.get(SetWriteSequence, (exercise_id, workout_id, athlete_id))
        await session.refresh(token)
        assert token.last_sequence == 7

    @pytest.mark.asyncio
    @pytest.mark.parametrize("newer_first", [True, False])
    async def test_concurrent_saves_keep_newest_state(self, session_factory, session, bench, entries, newer_first):
        workout_id, exercise_id, athlete_id = bench

        async def save(sequence, completed):
            async with session_factory() as s:
                return await save_sets(
                    s, workout_id, exercise_id, athlete_id, entries(completed, completed, completed), sequence=sequence
                )

        calls = [save(5, True), save(4, False)]
        if not newer_first:
            calls.reverse()
        results = await asyncio.gather(*calls)
        newer = results[0] if newer_first else results[1]

        assert newer.applied is True
        async with session_factory() as fresh:
            records = await get_sets(fresh, workout_id, exercise_id, athlete_id)
            token = await fresh.get(SetWriteSequence, (exercise_id, workout_id, athlete_id))
        assert [r.completed for r in records] == [True, True, True]
        assert token.last_sequence == 5

    @pytest.mark.asyncio
    async def test_unsequenced_writes_always_apply(self, session, bench, entries):
        workout_id, exercise_id, athlete_id = bench

        await save_sets(session, workout_id, exercise_id, athlete_id, entries(True), sequence=10)
        result = await save_sets(session, workout_id, exercise_id, athlete_id, entries(False))

        assert result.applied is True
        assert not (await get_sets(session, workout_id, exercise_id, athlete_id))[0].completed


class TestNotes:
    @pytest.mark.asyncio
    async def test_note_upsert(self, session, bench):
        workout_id, exercise_id, athlete_id = bench

        assert await get_note(session, workout_id, exercise_id, athlete_id) == ""
        await save_note(session, workout_id, exercise_id, athlete_id, "felt heavy")
        await save_note(session, workout_id, exercise_id, athlete_id, "felt fine")

        assert await get_note(session, workout_id, exercise_id, athlete_id) == "felt fine"

    @pytest.mark.asyncio
    async def test_note_requires_known_exercise(self, session, bench):
        workout_id, _exercise_id, athlete_id = bench

        with pytest.raises(NotFound):
            await save_note(session, workout_id, "missing", athlete_id, "x")
