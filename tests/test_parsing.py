import pytest

from item_ledger.core.errors import BadInputError
from item_ledger.utils.parsing import extract_categorizations, extract_json_array
from item_ledger.utils.prompts import build_categorization_prompt


def test_extracts_array_wrapped_in_prose():
    raw = 'Here is the list:\n```json\n[{"item": "Milk", "category": "Groceries"}]\n```\nThanks!'
    pairs = extract_categorizations(raw)
    assert [(p.item, p.category) for p in pairs] == [("Milk", "Groceries")]


def test_keys_are_case_insensitive_and_values_trimmed():
    pairs = extract_categorizations('[{"ITEM": " Soap ", "Category": "Personal Care"}]')
    assert (pairs[0].item, pairs[0].category) == ("Soap", "Personal Care")


def test_span_runs_from_first_to_last_bracket():
    raw = 'x [{"item": "a", "category": "b"}] and [noise]'
    assert extract_json_array(raw) == '[{"item": "a", "category": "b"}] and [noise]'
    with pytest.raises(BadInputError):
        extract_categorizations(raw)


@pytest.mark.parametrize(
    "raw",
    [
        "no array here",
        "] backwards [",
        "",
        '[{"item": "Milk"}]',
        '[{"item": "", "category": "Groceries"}]',
        '["Milk", "Groceries"]',
    ],
)
def test_unusable_answers_raise_bad_input_with_raw_text(raw):
    with pytest.raises(BadInputError) as info:
        extract_categorizations(raw)
    assert info.value.raw_response == raw
    assert info.value.status_code == 400


def test_empty_array_is_valid():
    assert extract_categorizations("[]") == []


def test_prompt_lists_items_and_demands_json_only():
    prompt = build_categorization_prompt(["Milk", " Soap "])
    assert "Items to categorize: Milk, Soap" in prompt
    assert "Return ONLY a valid JSON array" in prompt
    assert '[{"item": "item name", "category": "category name"}, ...]' in prompt
