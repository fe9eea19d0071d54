import asyncio
from types import SimpleNamespace

import discord

from messaging.acknowledgment import AckStage, AcknowledgmentEmitter
from services.image_generation import GeneratedImage
from tests.fakes import FakeChannel, not_found


def run(coro):
    return asyncio.run(coro)


def test_send_is_scheduled_without_waiting():
    channel = FakeChannel(send_delay=0.05)

    async def scenario():
        ack = AcknowledgmentEmitter("⏳ Thinking...").send(channel)
        assert channel.sent == []
        message = await ack.resolve()
        return ack, message

    ack, message = run(scenario())

    assert message is channel.last
    assert message.content == "⏳ Thinking..."
    assert ack.message_id == str(message.id)


def test_edits_move_forward_and_stop_after_final():
    channel = FakeChannel()

    async def scenario():
        ack = AcknowledgmentEmitter("⏳ Thinking...").send(channel)
        assert await ack.status("⏳ Looking outside...")
        assert await ack.finalize("It's sunny.")
        assert ack.is_final
        assert not await ack.status("⏳ Checking watch...")
        assert not await ack.finalize("Second answer")

    run(scenario())

    assert [edit["content"] for edit in channel.last.edits] == ["⏳ Looking outside...", "It's sunny."]
    assert channel.last.content == "It's sunny."


def test_lower_stage_edit_is_refused():
    channel = FakeChannel()

    async def scenario():
        ack = AcknowledgmentEmitter("⏳ Thinking...").send(channel)
        await ack.status("working")
        return await ack.edit("back to start", stage=AckStage.PROVISIONAL)

    assert run(scenario()) is False
    assert channel.last.content == "working"


def test_edit_of_deleted_message_reports_failure():
    channel = FakeChannel()

    async def scenario():
        ack = AcknowledgmentEmitter("⏳ Thinking...").send(channel)
        message = await ack.resolve()
        message.fail_with = not_found()
        result = await ack.finalize("answer")
        return ack, result

    ack, result = run(scenario())

    assert result is False
    assert ack.gone
    assert ack.is_final


def test_failed_send_leaves_a_dead_handle():
    channel = FakeChannel(send_error=discord.HTTPException(
        SimpleNamespace(status=500, reason="Server Error"), "boom"
    ))

    async def scenario():
        ack = AcknowledgmentEmitter("⏳ Thinking...").send(channel)
        return ack, await ack.status("working"), await ack.finalize("done"), await ack.delete()

    ack, status, final, deleted = run(scenario())

    assert (status, final, deleted) == (False, False, False)
    assert ack.message is None
    assert ack.gone


def test_final_edit_with_attachment_uploads_a_file():
    channel = FakeChannel()
    image = GeneratedImage(data=b"png-bytes", prompt="a red fox", model="gpt-image-1", size="1024x1024", duration_ms=900)

    async def scenario():
        ack = AcknowledgmentEmitter("⏳ Thinking...").send(channel)
        return await ack.finalize("🎨 done", attachment=image)

    assert run(scenario())

    attachments = channel.last.edits[-1]["attachments"]
    assert len(attachments) == 1
    assert isinstance(attachments[0], discord.File)
    assert attachments[0].filename == image.filename


def test_delete_removes_the_reply():
    channel = FakeChannel()

    async def scenario():
        ack = AcknowledgmentEmitter("⏳ Thinking...").send(channel)
        return ack, await ack.delete()

    ack, deleted = run(scenario())

    assert deleted
    assert channel.last.deleted
    assert ack.is_final
