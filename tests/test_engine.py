import asyncio

import pytest

from assembly import assemble
from assembly.engine import AssemblyEngine
from assembly.errors import AssemblyConfigError, GenerationServiceUnavailable
from assembly.registry import GenerationRegistry
from assembly.schemas import McqItem
from conftest import InMemoryStore, ScriptedService, make_mcq, single_topic_plan

FAST = {"batch_delay": 0, "seed": 1}


def _run(engine, *args, **kw):
    return asyncio.run(engine.assemble(*args, **kw))


def test_bank_shortfall_is_generated():
    store = InMemoryStore([make_mcq(n) for n in range(1, 6)])
    service = ScriptedService()
    plan = single_topic_plan(remembering=14, understanding=4, applying=2)
    registry = GenerationRegistry()

    result = _run(
        AssemblyEngine(store, service), plan, 20, 1,
        {**FAST, "secondary_item_type": "true_false"}, registry=registry,
    )
    report = result.report

    assert report.filled_slots == 20
    assert report.unfilled_slots == []
    assert report.generated_count == 15
    assert report.bank_count == 5
    assert any("Generated 15 AI item(s)" in w for w in report.warnings)
    assert len(result.forms) == 1 and len(result.forms[0].ordered_items) == 20
    assert len(registry.used_text_fingerprints) == 20

    assert len(store.inserted) == 15
    assert all(not i.approved and i.created_by == "ai" for i in store.inserted)
    (used_ids, test_id), = store.usage
    assert sorted(used_ids) == sorted(f"bank-{n}" for n in range(1, 6))
    assert test_id == report.test_id


def test_unreachable_service_reports_shortage_without_aborting():
    store = InMemoryStore([make_mcq(n) for n in range(1, 16)])
    service = ScriptedService(fail_with=GenerationServiceUnavailable("connection refused"))
    plan = single_topic_plan(remembering=20)

    result = _run(AssemblyEngine(store, service), plan, 20, 2, {**FAST, "secondary_ratio": 0})
    report = result.report

    assert len(report.unfilled_slots) == 5
    assert report.generated_count == 0
    assert report.filled_slots == 15
    assert report.filled_slots + len(report.unfilled_slots) == 20
    assert report.warnings
    assert any("unavailable" in w for w in report.warnings)
    assert any("5 of 20 slot(s) could not be filled" in w for w in report.warnings)
    assert [len(f.ordered_items) for f in result.forms] == [15, 15]
    assert store.inserted == []


def test_multi_version_run_has_consistent_keys():
    store = InMemoryStore([make_mcq(n) for n in range(1, 11)])
    plan = single_topic_plan(remembering=10)
    result = _run(AssemblyEngine(store), plan, 10, 3, {**FAST, "seed": 7, "secondary_ratio": 0})

    assert len(result.forms) == 3
    for form in result.forms:
        assert len(form.ordered_items) == 10
        for pos, item in enumerate(form.ordered_items, start=1):
            assert isinstance(item, McqItem)
            assert form.answer_key[pos] == item.correct_answer
            assert item.choices[item.correct_answer] == f"south{item.id.split('-')[1]}"
    orders = {tuple(it.id for it in f.ordered_items) for f in result.forms}
    assert len(orders) > 1


def test_no_generative_service_leaves_slots_unfilled():
    store = InMemoryStore([make_mcq(1)])
    result = _run(AssemblyEngine(store), single_topic_plan(remembering=3), 3, 1, {**FAST, "secondary_ratio": 0})
    assert len(result.report.unfilled_slots) == 2
    assert any("No generative service" in w for w in result.report.warnings)


def test_failed_bank_group_is_covered_by_generation():
    store = InMemoryStore(
        [make_mcq(n) for n in range(1, 4)],
        fail_groups={("Networking", "remembering", "easy", "mcq")},
    )
    service = ScriptedService()
    result = _run(AssemblyEngine(store, service), single_topic_plan(remembering=3), 3, 1, {**FAST, "secondary_ratio": 0})

    assert result.report.generated_count == 3
    assert result.report.bank_count == 0
    assert any("Item bank query failed" in w for w in result.report.warnings)


def test_store_write_failures_become_warnings():
    store = InMemoryStore([make_mcq(1)], fail_writes=True)
    service = ScriptedService()
    result = _run(AssemblyEngine(store, service), single_topic_plan(remembering=2), 2, 1, {**FAST, "secondary_ratio": 0})

    assert result.report.filled_slots == 2
    assert any("could not be saved" in w for w in result.report.warnings)
    assert any("Usage history could not be updated" in w for w in result.report.warnings)


def test_plan_total_mismatch_is_reported():
    store = InMemoryStore([make_mcq(n) for n in range(1, 6)])
    result = _run(AssemblyEngine(store), single_topic_plan(remembering=5), 8, 1, {**FAST, "secondary_ratio": 0})
    assert result.report.filled_slots == 5
    assert any("yields 5 item(s) but 8 were requested" in w for w in result.report.warnings)


def test_bookkeeping_can_be_disabled():
    store = InMemoryStore([make_mcq(1)])
    service = ScriptedService()
    _run(AssemblyEngine(store, service), single_topic_plan(remembering=2), 2, 1,
         {**FAST, "secondary_ratio": 0, "persist_generated": False, "record_usage": False})
    assert store.inserted == [] and store.usage == []


@pytest.mark.parametrize("plan,total,versions,options", [
    (single_topic_plan(remembering=5), 5, 0, None),
    (single_topic_plan(remembering=5), 5, 6, None),
    (single_topic_plan(remembering=5), 0, 1, None),
    (single_topic_plan(remembering=5), -3, 1, None),
    (single_topic_plan(remembering=5), 5, 1, {"secondary_item_type": "essay"}),
    (single_topic_plan(remembering=5, hours=0), 5, 1, None),
    ([], 5, 1, None),
    ([{"topic": "Routing", "hours": 2, "per_level_counts": {"remembering": -1}}], 5, 1, None),
    ([{"topic": "Routing", "hours": 2, "per_level_counts": {"recall-ish": 2}}], 5, 1, None),
])
def test_configuration_errors_abort_before_any_stage(plan, total, versions, options):
    store = InMemoryStore([make_mcq(1)])
    with pytest.raises(AssemblyConfigError):
        _run(AssemblyEngine(store, ScriptedService()), plan, total, versions, options)
    assert store.queries == []


def test_plan_accepts_plain_dicts():
    store = InMemoryStore([make_mcq(n) for n in range(1, 4)])
    plan = [{"topic": "Networking", "hours": 1.5, "per_level_counts": {"remembering": 3}}]
    result = _run(AssemblyEngine(store), plan, 3, 1, {**FAST, "secondary_ratio": 0})
    assert result.report.filled_slots == 3


def test_synchronous_entry_point():
    store = InMemoryStore([make_mcq(n) for n in range(1, 5)])
    result = assemble(
        single_topic_plan(remembering=6), 6, 2, {**FAST, "secondary_ratio": 0, "test_id": "midterm-1"},
        store=store, generator_service=ScriptedService(),
    )
    assert result.report.test_id == "midterm-1"
    assert result.report.filled_slots == 6
    assert result.report.generated_count == 2
    assert [f.version_label for f in result.forms] == ["A", "B"]


@pytest.mark.parametrize("error", [
    ConnectionError("refused"), TimeoutError("timed out"), OSError("network is unreachable"),
    RuntimeError("unexpected payload"),
])
def test_any_service_failure_still_returns_forms(error):
    store = InMemoryStore([make_mcq(n) for n in range(1, 16)])
    service = ScriptedService(fail_with=error)

    result = _run(AssemblyEngine(store, service), single_topic_plan(remembering=20), 20, 1,
                  {**FAST, "secondary_ratio": 0})

    assert len(result.report.unfilled_slots) == 5
    assert result.report.generated_count == 0
    assert len(result.forms[0].ordered_items) == 15
    assert any(str(error) in w for w in result.report.warnings)


def test_non_object_candidates_do_not_abort_the_run():
    store = InMemoryStore([make_mcq(n) for n in range(1, 4)])
    service = ScriptedService(lambda intent, n: "not a dict")

    result = _run(AssemblyEngine(store, service), single_topic_plan(remembering=5), 5, 1,
                  {**FAST, "secondary_ratio": 0})

    assert len(result.report.unfilled_slots) == 2
    assert result.report.rejections["generated: malformed"] == 6
