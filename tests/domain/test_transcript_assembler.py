import asyncio

import pytest

from live_transcriber.domain.transcript import (
    AssemblerPhase,
    TranscriptAssembler,
    TranscriptFragment,
    TranscriptSnapshot,
)
from tests.conftest import RecordingListener, SHORT_SILENCE_TIMEOUT_SECONDS

WAIT_PAST_TIMEOUT = SHORT_SILENCE_TIMEOUT_SECONDS * 3


def partial(text: str) -> TranscriptFragment:
    return TranscriptFragment(text=text, is_final=False)


def final(text: str = "") -> TranscriptFragment:
    return TranscriptFragment(text=text, is_final=True)


class TestPartialFragments:
    @pytest.mark.asyncio
    async def test_partials_concatenate_in_arrival_order(self, assembler):
        for piece in ["Hel", "lo ", "wor", "ld"]:
            assembler.on_fragment(partial(piece))
        assert assembler.in_progress == "Hello world"
        assert assembler.finalized == ""

    @pytest.mark.asyncio
    async def test_partials_are_not_trimmed(self, assembler):
        assembler.on_fragment(partial(" so "))
        assembler.on_fragment(partial(" what"))
        assert assembler.in_progress == " so  what"

    @pytest.mark.asyncio
    async def test_partial_schedules_silence_timer(self, assembler):
        assembler.on_fragment(partial("Hello"))
        assert assembler.has_pending_timer
        assert assembler.phase == AssemblerPhase.ACCUMULATING

    @pytest.mark.asyncio
    async def test_empty_partial_is_noop(self, assembler, listener):
        assembler.on_fragment(partial(""))
        assert assembler.snapshot == TranscriptSnapshot()
        assert not assembler.has_pending_timer
        assert listener.snapshots == []

    @pytest.mark.asyncio
    async def test_empty_partial_keeps_existing_timer(self, assembler):
        assembler.on_fragment(partial("Hello "))
        assembler.on_fragment(partial(""))
        await asyncio.sleep(WAIT_PAST_TIMEOUT)
        assert assembler.finalized == "Hello "


class TestFinalFragments:
    @pytest.mark.asyncio
    async def test_final_commits_pending_and_final_text(self, assembler):
        assembler.on_fragment(partial("Bonjour"))
        assembler.on_fragment(final("le monde"))
        assert assembler.finalized == "Bonjour le monde "
        assert assembler.in_progress == ""
        assert not assembler.has_pending_timer

    @pytest.mark.asyncio
    async def test_final_without_pending_text(self, assembler):
        assembler.on_fragment(final("  Hello there  "))
        assert assembler.finalized == "Hello there "

    @pytest.mark.asyncio
    async def test_empty_final_closes_turn(self, assembler):
        assembler.on_fragment(partial("Hel"))
        assembler.on_fragment(partial("lo"))
        assembler.on_fragment(final())
        assert assembler.finalized == "Hello "
        assert assembler.phase == AssemblerPhase.COMMITTED

    @pytest.mark.asyncio
    async def test_empty_final_with_nothing_pending_is_noop(self, assembler, listener):
        assembler.on_fragment(final())
        assert assembler.snapshot == TranscriptSnapshot()
        assert listener.snapshots == []

    @pytest.mark.asyncio
    async def test_final_appends_after_previous_commits(self, assembler):
        assembler.on_fragment(final("First turn."))
        assembler.on_fragment(partial("Second"))
        assembler.on_fragment(final("turn."))
        assert assembler.finalized == "First turn. Second turn. "

    @pytest.mark.asyncio
    async def test_final_before_timeout_is_not_committed_twice(self, assembler):
        assembler.on_fragment(partial("Hi"))
        assembler.on_fragment(final())
        await asyncio.sleep(WAIT_PAST_TIMEOUT)
        assert assembler.finalized == "Hi "

    @pytest.mark.asyncio
    async def test_final_keeps_existing_space_between_pieces(self, assembler):
        assembler.on_fragment(partial("Hello "))
        assembler.on_fragment(final("world"))
        assert assembler.finalized == "Hello world "


class TestSilenceTimeout:
    @pytest.mark.asyncio
    async def test_timeout_commits_pending_text(self, assembler):
        assembler.on_fragment(partial("Hello "))
        assembler.on_fragment(partial("world"))
        await asyncio.sleep(WAIT_PAST_TIMEOUT)
        assert assembler.finalized == "Hello world "
        assert assembler.in_progress == ""
        assert not assembler.has_pending_timer

    @pytest.mark.asyncio
    async def test_new_fragment_restarts_timer(self, listener):
        assembler = TranscriptAssembler(silence_timeout_seconds=0.2, listener=listener)
        assembler.on_fragment(partial("one "))
        await asyncio.sleep(0.12)
        assembler.on_fragment(partial("two"))
        await asyncio.sleep(0.12)
        assert assembler.finalized == ""
        assert assembler.in_progress == "one two"
        await asyncio.sleep(0.2)
        assert assembler.finalized == "one two "

    @pytest.mark.asyncio
    async def test_timeout_twice_is_noop_second_time(self, assembler, listener):
        assembler.on_fragment(partial("Hello"))
        assembler.on_silence_timeout()
        after_first = assembler.snapshot
        published = len(listener.snapshots)

        assembler.on_silence_timeout()
        assert assembler.snapshot == after_first
        assert len(listener.snapshots) == published

    @pytest.mark.asyncio
    async def test_timeout_on_blank_pending_text_is_noop(self, assembler):
        assembler.on_fragment(partial("   "))
        assembler.on_silence_timeout()
        assert assembler.finalized == ""

    @pytest.mark.asyncio
    async def test_manual_timeout_cancels_scheduled_timer(self, assembler):
        assembler.on_fragment(partial("Hello"))
        assembler.on_silence_timeout()
        assert not assembler.has_pending_timer
        await asyncio.sleep(WAIT_PAST_TIMEOUT)
        assert assembler.finalized == "Hello "

    @pytest.mark.asyncio
    async def test_timeout_collapses_double_whitespace(self, assembler):
        assembler.on_fragment(final("Hello"))
        assembler.on_fragment(partial("  big   world  "))
        assembler.on_silence_timeout()
        assert assembler.finalized == "Hello big world "

    @pytest.mark.asyncio
    async def test_collapse_can_be_disabled(self):
        assembler = TranscriptAssembler(collapse_whitespace=False)
        assembler.on_fragment(partial("big   world"))
        assembler.on_silence_timeout()
        assert assembler.finalized == "big   world "

    @pytest.mark.asyncio
    async def test_custom_separator(self):
        assembler = TranscriptAssembler(separator="\n")
        assembler.on_fragment(partial("line one"))
        assembler.on_silence_timeout()
        assembler.on_fragment(final("line two"))
        assert assembler.finalized == "line one\nline two\n"


class TestStopAndReset:
    @pytest.mark.asyncio
    async def test_stop_flushes_pending_text(self, assembler):
        assembler.on_fragment(final("Hello"))
        assembler.on_fragment(partial("world"))
        assert assembler.stop() == "Hello world"
        assert assembler.snapshot == TranscriptSnapshot()

    @pytest.mark.asyncio
    async def test_stop_twice_does_not_commit_again(self, assembler):
        assembler.on_fragment(partial("Hello"))
        assert assembler.stop() == "Hello"
        state_after_first = assembler.snapshot

        assert assembler.stop() == ""
        assert assembler.snapshot == state_after_first

    @pytest.mark.asyncio
    async def test_stop_publishes_flushed_transcript(self, assembler, listener):
        assembler.on_fragment(partial("Hello"))
        assembler.stop()
        assert listener.last == TranscriptSnapshot(finalized="Hello ", in_progress="")

    @pytest.mark.asyncio
    async def test_timer_does_not_fire_after_stop(self, assembler, listener):
        assembler.on_fragment(partial("Hello"))
        assembler.stop()
        published = len(listener.snapshots)

        await asyncio.sleep(WAIT_PAST_TIMEOUT)
        assert assembler.snapshot == TranscriptSnapshot()
        assert len(listener.snapshots) == published

    @pytest.mark.asyncio
    async def test_reset_cancels_timer_and_clears(self, assembler, listener):
        assembler.on_fragment(final("Old session"))
        assembler.on_fragment(partial("stale"))
        assembler.reset()
        await asyncio.sleep(WAIT_PAST_TIMEOUT)
        assert assembler.snapshot == TranscriptSnapshot()
        assert listener.last == TranscriptSnapshot()

    @pytest.mark.asyncio
    async def test_assembler_reusable_after_stop(self, assembler):
        assembler.on_fragment(final("first"))
        assembler.stop()
        assembler.reset()
        assembler.on_fragment(final("second"))
        assert assembler.finalized == "second "


class TestListener:
    @pytest.mark.asyncio
    async def test_snapshot_after_every_mutation(self, assembler, listener):
        assembler.on_fragment(partial("Hel"))
        assembler.on_fragment(partial("lo"))
        assembler.on_fragment(final())
        assert [s.text for s in listener.snapshots] == ["Hel", "Hello", "Hello "]

    @pytest.mark.asyncio
    async def test_displayed_text_is_finalized_plus_in_progress(self, assembler, listener):
        assembler.on_fragment(final("Hello"))
        assembler.on_fragment(partial("wor"))
        snapshot = listener.last
        assert snapshot.finalized == "Hello "
        assert snapshot.in_progress == "wor"
        assert snapshot.text == "Hello wor"

    @pytest.mark.asyncio
    async def test_additional_listener(self, assembler):
        extra = RecordingListener()
        assembler.add_listener(extra)
        assembler.on_fragment(partial("Hi"))
        assert extra.last.text == "Hi"


class TestNoTextLost:
    @pytest.mark.asyncio
    async def test_every_character_committed_once(self, assembler):
        sequences = [
            [partial("The qu"), partial("ick "), final("brown fox")],
            [partial("مرحبا "), partial("hello"), final(), partial("again")],
            [final("one"), final("two"), partial("th"), partial("ree")],
        ]
        for fragments in sequences:
            assembler.reset()
            for fragment in fragments:
                assembler.on_fragment(fragment)
            transcript = assembler.stop()

            received = "".join(f.text for f in fragments)
            assert transcript.replace(" ", "") == received.replace(" ", "")
