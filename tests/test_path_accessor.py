from __future__ import annotations

from event_normalizer.services.path_accessor import (
    MISSING,
    get_all_paths,
    get_nested_value,
    set_nested_value,
)


def test_get_nested_value_walks_dicts_and_list_indexes():
    payload = {"choices": [{"message": {"content": "hi"}}], "usage": {"total_tokens": 3}}

    assert get_nested_value(payload, "usage.total_tokens") == 3
    assert get_nested_value(payload, "choices.0.message.content") == "hi"


def test_get_nested_value_distinguishes_null_from_absent():
    payload = {"stop_sequence": None}

    assert get_nested_value(payload, "stop_sequence") is None
    assert get_nested_value(payload, "missing") is MISSING
    assert get_nested_value(payload, "stop_sequence.inner") is MISSING


def test_get_nested_value_never_raises_on_bad_shapes():
    payload = {"model": "gpt-4o", "choices": [{"index": 0}]}

    assert get_nested_value(payload, "model.name") is MISSING
    assert get_nested_value(payload, "choices.5.index") is MISSING
    assert get_nested_value(payload, "choices.first") is MISSING
    assert get_nested_value(None, "anything") is MISSING
    assert not MISSING


def test_set_nested_value_creates_and_overwrites_intermediates():
    target = {"response": "flat"}

    set_nested_value(target, "parameters.temperature", 0.2)
    set_nested_value(target, "response.usage.prompt_tokens", 10)

    assert target == {
        "parameters": {"temperature": 0.2},
        "response": {"usage": {"prompt_tokens": 10}},
    }


def test_get_all_paths_treats_lists_as_leaves():
    payload = {
        "id": "evt_1",
        "data": {"object": {"amount": 100, "tags": ["a", "b"]}},
        "empty": {},
        "messages": [{"role": "user"}],
    }

    assert get_all_paths(payload) == [
        "id",
        "data.object.amount",
        "data.object.tags",
        "messages",
    ]


def test_get_all_paths_handles_deep_nesting():
    payload: dict = {}
    node = payload
    for _ in range(5000):
        node["a"] = {}
        node = node["a"]
    node["leaf"] = 1

    paths = get_all_paths(payload)

    assert len(paths) == 1
    assert paths[0] == ".".join(["a"] * 5000 + ["leaf"])
