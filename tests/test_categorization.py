from __future__ import annotations

import pytest
from sqlalchemy import select, func

from item_ledger.core.errors import (
    BadInputError,
    ConflictError,
    NotFoundError,
    RequestTimeoutError,
    ServiceUnavailableError,
)
from item_ledger.models.enums import LinkState
from item_ledger.models.schemas import CategoryCreate, CategoryUpdate, ReceiptCreate, ReceiptItemCreate
from item_ledger.models.tables import Category, ItemName
from item_ledger.services.categories import category_repository
from item_ledger.services.categorization_rules import RuleTable
from item_ledger.services.categorization_service import CategorizationService
from item_ledger.services.receipts import ingest_receipt, receipt_repository

RULES = RuleTable.from_mapping(
    {
        "groceries": ["milk", "bread", "cheese"],
        "personal care": ["soap", "shampoo", "toothpaste"],
    }
)


def _receipt(*names: str) -> ReceiptCreate:
    return ReceiptCreate(items=[ReceiptItemCreate(name=n) for n in names])


async def _categories_of(session, owner, receipt_id):
    receipt = await receipt_repository.get_or_404(session, owner, receipt_id, populate_existing=True)
    return [item.category_id for item in receipt.items]


async def _category(session, owner, name) -> Category:
    return await category_repository.create(session, owner, CategoryCreate(name=name))


# ---------------------------------------------------------------------------
# Manual and bulk


@pytest.mark.asyncio
async def test_manual_categorization_reaches_existing_and_future_line_items(session, fake_oracle):
    svc = CategorizationService(rules=RULES, oracle=fake_oracle())
    first = await ingest_receipt(session, "u1", _receipt("Milk", "Bread"))
    second = await ingest_receipt(session, "u1", _receipt("milk"))
    dairy = await _category(session, "u1", "Dairy")

    item = await svc.categorize(session, "MILK", dairy.id, "u1")
    assert item.category_id == dairy.id
    assert item.category.name == "Dairy"

    assert await _categories_of(session, "u1", first.id) == [dairy.id, None]
    assert await _categories_of(session, "u1", second.id) == [dairy.id]

    later = await ingest_receipt(session, "u1", _receipt("Milk "))
    assert later.items[0].category_id == dairy.id
    assert later.items[0].link_state == LinkState.LINKED_CATEGORIZED


@pytest.mark.asyncio
async def test_recategorization_moves_every_line_item(session, fake_oracle):
    svc = CategorizationService(rules=RULES, oracle=fake_oracle())
    receipts = [await ingest_receipt(session, "u1", _receipt("Bread")) for _ in range(3)]
    bakery = await _category(session, "u1", "Bakery")
    groceries = await _category(session, "u1", "Groceries")

    await svc.categorize(session, "bread", bakery.id, "u1")
    await svc.categorize(session, "bread", groceries.id, "u1")

    for receipt in receipts:
        assert await _categories_of(session, "u1", receipt.id) == [groceries.id]


@pytest.mark.asyncio
async def test_manual_categorization_not_found_cases(session, fake_oracle):
    svc = CategorizationService(rules=RULES, oracle=fake_oracle())
    await ingest_receipt(session, "u1", _receipt("Milk"))
    mine = await _category(session, "u1", "Dairy")
    theirs = await _category(session, "u2", "Dairy")
    # Failed entries roll back, which expires loaded objects; keep plain ids
    mine_id, theirs_id = mine.id, theirs.id

    with pytest.raises(NotFoundError):
        await svc.categorize(session, "Unicorn", mine_id, "u1")
    with pytest.raises(NotFoundError):
        await svc.categorize(session, "Milk", theirs_id, "u1")

    item = (await session.execute(select(ItemName).execution_options(populate_existing=True))).scalar_one()
    assert item.category_id is None


@pytest.mark.asyncio
async def test_bulk_categorization_is_partial(session, fake_oracle):
    svc = CategorizationService(rules=RULES, oracle=fake_oracle())
    receipt = await ingest_receipt(session, "u1", _receipt("Milk", "Soap", "Bread"))
    groceries_id = (await _category(session, "u1", "Groceries")).id
    care_id = (await _category(session, "u1", "Personal Care")).id
    receipt_id = receipt.id

    # Failed entries roll back, which expires loaded objects; keep plain ids
    result = await svc.categorize_bulk(
        session,
        {"milk": groceries_id, "Ghost": groceries_id, "soap": care_id, "Bread": "no-such-category"},
        "u1",
    )

    assert result.updated == ["milk", "soap"]
    assert set(result.failed) == {"Ghost", "Bread"}
    assert await _categories_of(session, "u1", receipt_id) == [groceries_id, care_id, None]


# ---------------------------------------------------------------------------
# Rule job


@pytest.mark.asyncio
async def test_rule_job_labels_matching_items_and_is_idempotent(session, fake_oracle):
    svc = CategorizationService(rules=RULES, oracle=fake_oracle())
    receipt = await ingest_receipt(session, "u1", _receipt("Whole Milk", "Widget", "Shampoo"))
    groceries = await _category(session, "u1", "Groceries")
    # No "personal care" category for u1: shampoo must stay uncategorized

    summary = await svc.run_categorization_job(session, "u1")
    assert (summary.processed, summary.updated, summary.unmatched) == (3, 1, 2)
    assert await _categories_of(session, "u1", receipt.id) == [groceries.id, None, None]

    again = await svc.run_categorization_job(session, "u1")
    assert again.updated == 0
    assert again.processed == 2


@pytest.mark.asyncio
async def test_rule_job_only_touches_the_callers_items(session, fake_oracle):
    svc = CategorizationService(rules=RULES, oracle=fake_oracle())
    await _category(session, "u1", "Groceries")
    await _category(session, "u2", "Groceries")
    theirs_id = (await ingest_receipt(session, "u2", _receipt("Cheese"))).id

    summary = await svc.run_categorization_job(session, "u1")
    assert summary.processed == 0
    assert await _categories_of(session, "u2", theirs_id) == [None]


@pytest.mark.asyncio
async def test_rule_job_matches_category_names_case_insensitively(session, fake_oracle):
    svc = CategorizationService(rules=RULES, oracle=fake_oracle())
    receipt = await ingest_receipt(session, "u1", _receipt("Bar Soap"))
    care = await _category(session, "u1", "PERSONAL CARE")

    await svc.run_categorization_job(session, "u1")
    assert await _categories_of(session, "u1", receipt.id) == [care.id]


# ---------------------------------------------------------------------------
# Oracle batch


@pytest.mark.asyncio
async def test_auto_categorize_applies_oracle_labels(session, fake_oracle):
    oracle = fake_oracle(
        'Sure! Here you go:\n[{"Item": "milk", "CATEGORY": "Groceries"},'
        ' {"item": "Soap", "category": "Personal Care"},'
        ' {"item": "Caviar", "category": "Luxury"}]\nAnything else?'
    )
    svc = CategorizationService(rules=RULES, oracle=oracle)
    existing_id = (await _category(session, "u1", "groceries")).id
    receipt_id = (await ingest_receipt(session, "u1", _receipt("Milk", "Soap", "Widget"))).id

    categories = await svc.auto_categorize(session, "u1")

    assert len(oracle.prompts) == 1
    assert "Milk, Soap, Widget" in oracle.prompts[0]
    names = sorted(c.name for c in categories)
    # "Luxury" was for an item that was not asked about
    assert names == ["Personal Care", "groceries"]
    care = next(c for c in categories if c.name == "Personal Care")
    assert await _categories_of(session, "u1", receipt_id) == [existing_id, care.id, None]


@pytest.mark.asyncio
async def test_auto_categorize_skips_oracle_when_nothing_is_pending(session, fake_oracle):
    oracle = fake_oracle("[]")
    svc = CategorizationService(rules=RULES, oracle=oracle)
    await _category(session, "u1", "Misc")

    categories = await svc.auto_categorize(session, "u1")
    assert [c.name for c in categories] == ["Misc"]
    assert oracle.prompts == []


@pytest.mark.asyncio
@pytest.mark.parametrize("answer", ["I cannot help with that.", "[{item: milk}]", '[{"name": "milk"}]'])
async def test_auto_categorize_rejects_unusable_answers(session, fake_oracle, answer):
    svc = CategorizationService(rules=RULES, oracle=fake_oracle(answer))
    receipt_id = (await ingest_receipt(session, "u1", _receipt("Milk"))).id

    with pytest.raises(BadInputError) as info:
        await svc.auto_categorize(session, "u1")

    assert info.value.raw_response == answer
    assert info.value.details["raw_response"] == answer
    assert await category_repository.list_for_owner(session, "u1") == []
    assert await _categories_of(session, "u1", receipt_id) == [None]


@pytest.mark.asyncio
async def test_auto_categorize_propagates_oracle_outage(session, fake_oracle):
    svc = CategorizationService(rules=RULES, oracle=fake_oracle(exc=ServiceUnavailableError("down")))
    await ingest_receipt(session, "u1", _receipt("Milk"))

    with pytest.raises(ServiceUnavailableError):
        await svc.auto_categorize(session, "u1")
    assert (await session.execute(select(func.count(Category.id)))).scalar_one() == 0


@pytest.mark.asyncio
async def test_auto_categorize_bounds_the_oracle_call(session, fake_oracle):
    svc = CategorizationService(rules=RULES, oracle=fake_oracle('[{"item": "Milk", "category": "Dairy"}]', delay=1.0), oracle_timeout=0.05)
    receipt_id = (await ingest_receipt(session, "u1", _receipt("Milk"))).id

    with pytest.raises(RequestTimeoutError):
        await svc.auto_categorize(session, "u1")
    assert await _categories_of(session, "u1", receipt_id) == [None]


@pytest.mark.asyncio
async def test_auto_categorize_keeps_labels_set_while_waiting(session, session_factory, fake_oracle):
    manual_id = (await _category(session, "u1", "Breakfast")).id
    receipt_id = (await ingest_receipt(session, "u1", _receipt("Milk", "Soap"))).id

    class ManualEditDuringWait(fake_oracle):
        async def send(self, prompt, model=None):
            async with session_factory() as other:
                await svc.categorize(other, "Milk", manual_id, "u1")
            return await super().send(prompt, model)

    oracle = ManualEditDuringWait('[{"item": "Milk", "category": "Dairy"}, {"item": "Soap", "category": "Personal Care"}]')
    svc = CategorizationService(rules=RULES, oracle=oracle)

    categories = await svc.auto_categorize(session, "u1")

    care = next(c for c in categories if c.name == "Personal Care")
    assert await _categories_of(session, "u1", receipt_id) == [manual_id, care.id]


# ---------------------------------------------------------------------------
# Category store


@pytest.mark.asyncio
async def test_deleting_a_category_uncategorizes_items(session, fake_oracle):
    svc = CategorizationService(rules=RULES, oracle=fake_oracle())
    receipt = await ingest_receipt(session, "u1", _receipt("Milk"))
    dairy = await _category(session, "u1", "Dairy")
    await svc.categorize(session, "Milk", dairy.id, "u1")

    await category_repository.delete(session, "u1", dairy.id)

    refreshed = await receipt_repository.get_or_404(session, "u1", receipt.id, populate_existing=True)
    assert len(refreshed.items) == 1
    assert refreshed.items[0].link_state == LinkState.LINKED_UNCATEGORIZED


@pytest.mark.asyncio
async def test_category_names_are_unique_per_owner_ignoring_case(session):
    groceries = await _category(session, "u1", "Groceries")
    with pytest.raises(ConflictError):
        await _category(session, "u1", "GROCERIES")
    # Another owner may use the same name
    await _category(session, "u2", "Groceries")

    other = await _category(session, "u1", "Snacks")
    with pytest.raises(ConflictError):
        await category_repository.update(session, "u1", other.id, CategoryUpdate(name="groceries"))
    renamed = await category_repository.update(session, "u1", groceries.id, CategoryUpdate(name="Food", icon="cart"))
    assert (renamed.name, renamed.icon) == ("Food", "cart")


@pytest.mark.asyncio
async def test_categories_of_other_owners_are_not_visible(session):
    theirs = await _category(session, "u2", "Hidden")
    with pytest.raises(NotFoundError):
        await category_repository.get_or_404(session, "u1", theirs.id)
    with pytest.raises(NotFoundError):
        await category_repository.delete(session, "u1", theirs.id)
