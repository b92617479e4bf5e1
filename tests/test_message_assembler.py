from types import SimpleNamespace

from chatdesk.services.message_assembler import (
    DEFAULT_DOCUMENT_PROMPT,
    DEFAULT_IMAGE_PROMPT,
    ChatTurn,
    ImageSegment,
    LiveImage,
    TextSegment,
    assemble_turns,
    contains_images,
    to_openai_messages,
)


def msg(id, role, content, attachments=None):
    return SimpleNamespace(id=id, role=role, content=content, attachments=attachments)


PNG = LiveImage("a.png", "image/png", "AAAA")
JPEG = LiveImage("b.jpg", "image/jpeg", "BBBB")


def test_plain_history_is_replayed_in_order():
    history = [msg(1, "user", "hi"), msg(2, "assistant", "hello"), msg(3, "user", "how are you?")]
    turns = assemble_turns(history, current_message_id=3)
    assert turns == [
        ChatTurn("user", "hi"),
        ChatTurn("assistant", "hello"),
        ChatTurn("user", "how are you?"),
    ]


def test_current_turn_images_follow_text_in_upload_order():
    history = [msg(1, "user", "compare these")]
    turns = assemble_turns(history, current_message_id=1, images=[PNG, JPEG])

    content = turns[0].content
    assert content[0] == TextSegment("compare these")
    assert content[1:] == [ImageSegment("image/png", "AAAA"), ImageSegment("image/jpeg", "BBBB")]
    assert contains_images(turns)


def test_images_with_empty_text_use_default_prompt_and_document_text():
    history = [msg(1, "user", "")]
    turns = assemble_turns(history, 1, document_text="\n\n--- Content from a.txt ---\nx\n", images=[PNG])
    assert turns[0].content[0] == TextSegment(DEFAULT_IMAGE_PROMPT + "\n\n--- Content from a.txt ---\nx\n")


def test_document_only_turn_is_plain_text():
    turns = assemble_turns([msg(1, "user", "")], 1, document_text="\n\nDOC")
    assert turns == [ChatTurn("user", DEFAULT_DOCUMENT_PROMPT + "\n\nDOC")]
    assert not contains_images(turns)


def test_earlier_attachments_become_markers_and_images_are_not_resent():
    history = [
        msg(1, "user", "look", attachments=[{"filename": "cat.png", "mimetype": "image/png"}]),
        msg(2, "assistant", "a cat"),
        msg(3, "user", "and now?"),
    ]
    turns = assemble_turns(history, current_message_id=3, images=[JPEG])

    assert turns[0] == ChatTurn("user", "look [Attached file: cat.png (image/png)]")
    assert isinstance(turns[2].content, list)
    assert sum(t.has_images for t in turns) == 1


def test_unknown_roles_are_skipped():
    turns = assemble_turns([msg(1, "system", "x"), msg(2, "user", "y")], 2)
    assert turns == [ChatTurn("user", "y")]


def test_openai_rendering_uses_image_url_parts():
    turns = [ChatTurn("user", [TextSegment("what is this?"), ImageSegment("image/png", "AAAA")])]
    messages = to_openai_messages(turns, system_prompt="be helpful")

    assert messages[0] == {"role": "system", "content": "be helpful"}
    assert messages[1]["content"] == [
        {"type": "text", "text": "what is this?"},
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
    ]
