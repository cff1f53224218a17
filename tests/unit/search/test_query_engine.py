"""Unit tests for the query engine."""

from datetime import datetime, timedelta, timezone

import pytest

from workflow_index.domain.search import SearchRequest
from workflow_index.errors import ValidationError
from workflow_index.search.query import QueryEngine, build_any_expression, build_match_expression, page_count
from workflow_index.services.category_service import CategoryMap


class TestBuildMatchExpression:
    @pytest.mark.parametrize(
        ("query", "expected"),
        [
            ("telegram webhook", '"telegram"* AND "webhook"*'),
            ('"daily report" slack', '"daily report" AND "slack"*'),
            ("a b", '"a" AND "b"'),
            ("e-mail", '"e-mail"*'),
            ("o'brien", "\"o'brien\"*"),
            ('say "hi', '"say"* AND "hi"*'),
            ("slack; DROP TABLE workflows", '"slack"* AND "DROP"* AND "TABLE"* AND "workflows"*'),
        ],
    )
    def test_translation(self, query, expected):
        assert build_match_expression(query) == expected

    @pytest.mark.parametrize("query", ["", "   ", "!!! ---", '""'])
    def test_nothing_searchable(self, query):
        assert build_match_expression(query) is None


def test_build_any_expression():
    assert build_any_expression(["slack", "Google Sheets", "a", "!!", "slack"]) == (
        '"slack"* OR "Google"* OR "Sheets"* OR "a"'
    )
    assert build_any_expression([]) is None


def test_page_count():
    assert page_count(0, 10) == 0
    assert page_count(10, 10) == 1
    assert page_count(11, 10) == 2


@pytest.fixture
def seeded_store(store, record_factory):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    rows = [
        ("0001_telegram_webhook.json", "Telegram Webhook Relay", "Webhook", ["Telegram"], 3, True),
        ("0002_slack_digest.json", "Slack Digest", "Scheduled", ["Slack"], 8, False),
        ("0003_telegram_ai.json", "Telegram AI Assistant", "Triggered", ["OpenAi", "Telegram"], 18, True),
        ("0004_crm_sync.json", "CRM Sync", "Webhook", ["HubSpot", "Slack"], 12, True),
        ("0005_manual_export.json", "Manual Export", "Manual", [], 2, False),
    ]
    for index, (filename, name, trigger, integrations, nodes, active) in enumerate(rows):
        store.upsert(
            record_factory(
                filename,
                name=name,
                trigger_type=trigger,
                integrations=integrations,
                node_count=nodes,
                active=active,
                description=f"{trigger} workflow with {nodes} nodes",
                analyzed_at=base + timedelta(days=index),
            )
        )
    return store


@pytest.fixture
def engine(seeded_store):
    categories = CategoryMap(
        {
            "Communication": ["0001_telegram_webhook.json", "0002_slack_digest.json", "0003_telegram_ai.json"],
            "Empty": [],
        }
    )
    return QueryEngine(seeded_store, categories)


def _filenames(page):
    return [record.filename for record in page.documents]


def test_empty_query_matches_everything_sorted_by_name(engine):
    page = engine.search()
    assert page.total == 5
    assert _filenames(page) == [
        "0004_crm_sync.json",
        "0005_manual_export.json",
        "0002_slack_digest.json",
        "0003_telegram_ai.json",
        "0001_telegram_webhook.json",
    ]


def test_text_terms_are_prefix_matched_and_anded(engine):
    assert _filenames(engine.search(query="telegr")) == ["0003_telegram_ai.json", "0001_telegram_webhook.json"]
    assert _filenames(engine.search(query="telegram webhook")) == ["0001_telegram_webhook.json"]


def test_quoted_phrase_is_exact(engine):
    assert _filenames(engine.search(query='"slack digest"')) == ["0002_slack_digest.json"]
    assert engine.search(query='"digest slack"').total == 0


def test_text_searches_integrations_column(engine):
    assert _filenames(engine.search(query="hubspot")) == ["0004_crm_sync.json"]


def test_structured_filters(engine):
    assert _filenames(engine.search(trigger="Webhook", active_only=True)) == [
        "0004_crm_sync.json",
        "0001_telegram_webhook.json",
    ]
    assert _filenames(engine.search(complexity="high")) == ["0003_telegram_ai.json"]
    assert _filenames(engine.search(integrations=["Slack", "HubSpot"])) == ["0004_crm_sync.json"]


def test_category_restricts_to_members(engine):
    page = engine.search(category="Communication", query="telegram")
    assert _filenames(page) == ["0003_telegram_ai.json", "0001_telegram_webhook.json"]


@pytest.mark.parametrize("category", ["Empty", "Unknown Category"])
def test_unknown_or_empty_category_matches_nothing(engine, category):
    page = engine.search(category=category)
    assert page.total == 0
    assert page.documents == []


@pytest.mark.parametrize("category", ["", "   ", None])
def test_blank_category_means_no_category_filter(engine, category):
    assert engine.search(category=category, trigger="").total == 5
    assert SearchRequest.parse(category=category).category is None


def test_sort_orders(engine):
    assert _filenames(engine.search(sort="node_count", limit=2)) == ["0003_telegram_ai.json", "0004_crm_sync.json"]
    assert _filenames(engine.search(sort="analyzed_at", limit=2)) == ["0005_manual_export.json", "0004_crm_sync.json"]


def test_pagination_is_complete_and_disjoint(engine):
    seen = []
    first = engine.search(limit=2)
    for offset in range(0, first.total, 2):
        page = engine.search(limit=2, offset=offset)
        assert page.total == first.total
        assert page.page == offset // 2 + 1
        seen.extend(_filenames(page))

    assert first.pages == 3
    assert len(seen) == len(set(seen)) == 5


def test_paged_telegram_query(store, record_factory):
    for index in range(23):
        store.upsert(
            record_factory(f"{index:04d}_telegram_webhook.json", name=f"Telegram Webhook {index}", trigger_type="Webhook")
        )
    store.upsert(record_factory("9999_slack.json", name="Slack only"))
    engine = QueryEngine(store)

    page = engine.search(query="telegram webhook", limit=10, offset=0)
    assert page.total == 23
    assert page.pages == 3
    assert len(page.documents) == 10

    beyond = engine.search(query="telegram webhook", limit=10, offset=40)
    assert beyond.documents == []
    assert beyond.total == 23


def test_accepts_prebuilt_request(engine):
    request = SearchRequest(query="crm", limit=5)
    assert _filenames(engine.search(request)) == ["0004_crm_sync.json"]


@pytest.mark.parametrize(
    ("filters", "field"),
    [
        ({"limit": 0}, "limit"),
        ({"limit": 101}, "limit"),
        ({"offset": -1}, "offset"),
        ({"trigger": "Sometimes"}, "trigger"),
        ({"complexity": "extreme"}, "complexity"),
        ({"sort": "random"}, "sort"),
        ({"colour": "blue"}, "colour"),
    ],
)
def test_invalid_requests_name_the_field(engine, filters, field):
    with pytest.raises(ValidationError) as excinfo:
        engine.search(**filters)
    assert excinfo.value.field == field
