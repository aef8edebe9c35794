import pytest
from sqlalchemy import create_engine

from assembly.errors import ItemStoreError
from assembly.schemas import ShortAnswerItem
from assembly.taxonomy import CognitiveLevel, Difficulty
from database import Base, SqlItemStore, get_session_factory
from database.models import BankItem
from conftest import GOOD_ANSWER, make_mcq, make_true_false, unique_text


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'bank.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_store(engine):
    return SqlItemStore(get_session_factory(engine))


def test_insert_and_search_round_trip(sql_store):
    stored = sql_store.insert_many([make_mcq(1), make_mcq(2), make_true_false(3)])
    assert [i.id for i in stored] == ["bank-1", "bank-2", "bank-tf-3"]

    found = sql_store.search("Networking", "remembering", "easy", "mcq")
    assert sorted(i.id for i in found) == ["bank-1", "bank-2"]
    first = next(i for i in found if i.id == "bank-1")
    assert first.choices == {"A": "north1", "B": "south1", "C": "east1", "D": "west1"}
    assert first.correct_answer == "B"
    assert first.cognitive_level == CognitiveLevel.REMEMBERING

    (tf,) = sql_store.search("Networking", "remembering", "easy", "true_false")
    assert tf.correct_answer == "True"


def test_inserted_items_without_id_get_one(sql_store):
    item = ShortAnswerItem(
        id="",
        text=unique_text(4),
        topic="Networking",
        cognitive_level=CognitiveLevel.UNDERSTANDING,
        difficulty=Difficulty.EASY,
        model_answer=GOOD_ANSWER,
        accepted_answers=["routing"],
        approved=False,
        created_by="ai",
    )
    (stored,) = sql_store.insert_many([item])
    assert len(stored.id) == 36
    assert sql_store.search("Networking", "understanding", "easy", "short_answer") == []

    (draft,) = sql_store.search("Networking", "understanding", "easy", "short_answer", approved_only=False)
    assert draft.id == stored.id
    assert draft.accepted_answers == ["routing"]
    assert draft.created_by == "ai"


def test_search_filters_on_every_key(sql_store):
    sql_store.insert_many([
        make_mcq(1),
        make_mcq(2, topic="Storage"),
        make_mcq(3, level=CognitiveLevel.UNDERSTANDING),
        make_mcq(4, difficulty=Difficulty.AVERAGE),
    ])
    assert [i.id for i in sql_store.search("Networking", "remembering", "easy", "mcq")] == ["bank-1"]
    assert [i.id for i in sql_store.search("Storage", "remembering", "easy", "mcq")] == ["bank-2"]


def test_deleted_items_are_hidden(sql_store, engine):
    sql_store.insert_many([make_mcq(1), make_mcq(2)])
    with get_session_factory(engine)() as db:
        db.query(BankItem).filter(BankItem.id == "bank-1").update({BankItem.deleted: True})
        db.commit()
    assert [i.id for i in sql_store.search("Networking", "remembering", "easy", "mcq")] == ["bank-2"]


def test_recorded_usage_pushes_items_back(sql_store):
    sql_store.insert_many([make_mcq(1), make_mcq(2)])
    sql_store.record_usage(["bank-1"], "quiz-7")

    found = sql_store.search("Networking", "remembering", "easy", "mcq")
    assert [i.id for i in found] == ["bank-2", "bank-1"]
    used = found[1]
    assert [u.test_id for u in used.usage_history] == ["quiz-7"]
    assert used.last_used_at is not None


def test_unreadable_rows_are_skipped(sql_store, engine):
    sql_store.insert_many([make_mcq(1)])
    with get_session_factory(engine)() as db:
        db.add(BankItem(
            id="broken", text="Which port?", item_type="mcq", topic="Networking",
            cognitive_level="remembering", difficulty="easy", approved=True,
            choices=["not", "a", "mapping"], correct_answer="A",
        ))
        db.commit()
    assert [i.id for i in sql_store.search("Networking", "remembering", "easy", "mcq")] == ["bank-1"]


class FakeEmbedder:
    def __init__(self):
        self.batches = []

    def embed_many(self, texts):
        self.batches.append(list(texts))
        return [[float(len(t)), 1.0] for t in texts]


def test_backfill_embeddings(sql_store):
    sql_store.insert_many([make_mcq(1), make_mcq(2, embedding_vector=[0.5, 0.5])])
    embedder = FakeEmbedder()

    assert sql_store.backfill_embeddings(embedder, show_progress=False) == 1
    assert embedder.batches == [[unique_text(1)]]
    assert sql_store.backfill_embeddings(embedder, show_progress=False) == 0

    vectors = {i.id: i.embedding_vector for i in sql_store.search("Networking", "remembering", "easy", "mcq")}
    assert vectors["bank-1"] == [float(len(unique_text(1))), 1.0]
    assert vectors["bank-2"] == [0.5, 0.5]


def test_database_errors_become_store_errors(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    store = SqlItemStore(get_session_factory(engine))
    with pytest.raises(ItemStoreError):
        store.search("Networking", "remembering", "easy", "mcq")
    with pytest.raises(ItemStoreError):
        store.insert_many([make_mcq(1)])
    with pytest.raises(ItemStoreError):
        store.record_usage(["bank-1"], "quiz-7")
    engine.dispose()
