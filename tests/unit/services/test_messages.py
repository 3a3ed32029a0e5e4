"""Tests for error/warning collections and their break/rollback flags."""

import pytest

from service_flow.services.exceptions import MessageError
from service_flow.services.messages import Message, Messages


@pytest.mark.unit
def test_add_groups_messages_by_key_in_order():
    errors = Messages()
    errors.add("name", "is blank")
    errors.add("base", "Something went wrong")
    errors.add("name", ["is too short", "is invalid"])

    assert errors.keys() == ["name", "base"]
    assert errors.count() == 4
    assert len(errors) == 2
    assert [m.text for m in errors["name"]] == ["is blank", "is too short", "is invalid"]
    assert errors.to_dict() == {
        "name": ["is blank", "is too short", "is invalid"],
        "base": ["Something went wrong"],
    }
    assert "base" in errors
    assert list(errors) == ["name", "base"]


@pytest.mark.unit
@pytest.mark.parametrize("text", ["", "   ", None, 42, []])
def test_blank_or_non_string_text_is_rejected(text):
    errors = Messages()

    with pytest.raises(MessageError):
        errors.add("name", text)

    assert not errors.any()


@pytest.mark.unit
def test_collection_defaults_apply_to_unset_flags():
    errors = Messages(break_on_add=True, rollback_on_add=True)
    errors.add("base", "failed")

    assert errors.break_requested
    assert errors.rollback_requested


@pytest.mark.unit
def test_explicit_flags_override_collection_defaults():
    errors = Messages(break_on_add=True, rollback_on_add=True)
    errors.add("base", "recoverable", break_execution=False, rollback=False)

    assert not errors.break_requested
    assert not errors.rollback_requested

    warnings = Messages()
    warnings.add("base", "stop here", break_execution=True)

    assert warnings.break_requested
    assert not warnings.rollback_requested


@pytest.mark.unit
def test_copy_from_keeps_explicit_flags_and_applies_own_defaults():
    child = Messages(break_on_add=False, rollback_on_add=False)
    child.add("name", "is blank")
    child.add("base", "hard failure", rollback=True)

    parent = Messages(break_on_add=True, rollback_on_add=False)
    parent.copy_from(child)

    assert parent.to_dict() == {"name": ["is blank"], "base": ["hard failure"]}
    assert parent["name"][0].break_execution is None
    assert parent["base"][0].rollback is True
    assert parent.break_requested
    assert parent.rollback_requested


@pytest.mark.unit
def test_copy_from_mapping_and_override_flags():
    parent = Messages(break_on_add=True)
    parent.copy_from({"email": ["is taken"], "name": "is blank"}, break_execution=False)

    assert parent.to_dict() == {"email": ["is taken"], "name": ["is blank"]}
    assert not parent.break_requested


@pytest.mark.unit
def test_copy_from_unknown_source_is_rejected():
    with pytest.raises(MessageError):
        Messages().copy_from(object())


@pytest.mark.unit
def test_add_accepts_message_instances():
    errors = Messages()
    errors.add("ignored", Message("base", "boom", break_execution=True))

    assert errors["ignored"][0].text == "boom"
    assert errors["ignored"][0].key == "ignored"
    assert errors.break_requested


@pytest.mark.unit
def test_full_message_joins_keys_and_texts():
    errors = Messages()
    errors.add("base", "Something went wrong")
    errors.add("name", "is blank")

    assert errors.full_message() == "base: Something went wrong; name: is blank"
    assert str(errors["name"][0]) == "is blank"
