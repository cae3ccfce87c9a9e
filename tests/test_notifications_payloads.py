"""Unit tests for digest payload resolution."""

import pytest

from market_alerts.config.models import DigestConfig
from market_alerts.domain.models import CommitRange
from market_alerts.notifications.payloads import (
    INTRO_LONG,
    INTRO_SHORT,
    best_deal_line,
    brand_of,
    build_digest_context,
    build_footer,
    build_item,
    build_summary,
    computed_badge,
    format_pct,
    format_save_abs,
    group_events,
    item_url,
    pick_badges,
    pluralize,
)

from tests.helpers import delivery_job, matched_event

SITE = "https://market.example.com"


@pytest.fixture
def digest_config():
    return DigestConfig(
        brand_name="Market Alerts",
        site_url=SITE + "/",
        repo_url="https://github.com/example/market-data",
    )


class TestFormatting:
    """Tests for number and link formatting."""

    def test_save_abs_rounds_half_up(self):
        """Test whole-dollar rounding."""
        assert format_save_abs(12.5) == "$13"
        assert format_save_abs(12.49) == "$12"
        assert format_save_abs(None) == ""
        assert format_save_abs(float("inf")) == ""

    def test_pct(self):
        """Test whole-percent rounding of the magnitude."""
        assert format_pct(24.5) == "25%"
        assert format_pct(-10) == "10%"
        assert format_pct(None) == ""

    def test_pluralize(self):
        """Test singular and plural forms."""
        assert pluralize(1, "update") == "1 update"
        assert pluralize(0, "sale") == "0 sales"
        assert pluralize(3, "sale") == "3 sales"

    def test_item_url_escapes_sku(self):
        """Test that the SKU is percent-encoded in the item link."""
        assert item_url(SITE, " A:1 ") == f"{SITE}/#/item/A%3A1"

    def test_site_url_trailing_slash_stripped(self, digest_config):
        """Test that configured site URLs never produce a double slash."""
        assert digest_config.site_url == SITE


class TestBrands:
    """Tests for brand extraction."""

    @pytest.mark.parametrize(
        "name,brand",
        [
            ("Ardbeg Ten Islay Single Malt", "Ardbeg Ten Islay"),
            ("Caol Ila 12 Year", "Caol Ila"),
            ("Buffalo Trace Bourbon", "Buffalo Trace"),
            ("Single Cask Nation", "Single"),
            ("12 Year Old", ""),
            ("", ""),
        ],
    )
    def test_brand_of(self, name, brand):
        """Test leading-word brand guesses."""
        assert brand_of(name) == brand


class TestBadges:
    """Tests for badge selection."""

    def test_best_price_wins(self):
        """Test that cheapest-now outranks market flags."""
        event = matched_event(is_cheapest_now=True, market_new=True)
        assert computed_badge(event) == "BEST PRICE"
        assert pick_badges(event) == [
            {"label": "ON SALE", "tone": "good"},
            {"label": "BEST PRICE", "tone": "best"},
        ]

    @pytest.mark.parametrize(
        "flag,label",
        [("market_new", "NEW TO MARKET"), ("market_return", "MARKET RETURN"), ("market_out", "MARKET OUT")],
    )
    def test_market_badges(self, flag, label):
        """Test the computed market badge for each flag."""
        event = matched_event("GLOBAL_RETURN", **{flag: True})
        assert computed_badge(event) == label
        assert pick_badges(event)[1] == {"label": label, "tone": "neutral"}

    def test_event_badge_only(self):
        """Test that an event with no flags gets one badge."""
        event = matched_event("OUT_OF_STOCK")
        assert pick_badges(event) == [{"label": "OUT OF STOCK", "tone": "bad"}]


class TestItems:
    """Tests for per-item context."""

    def test_price_drop_item(self):
        """Test the price drop item fields."""
        item = build_item(matched_event(is_cheapest_now=True, sku_img=" https://img/a1.png "), SITE)

        assert item["name"] == "Alpha Widget"
        assert item["url"] == f"{SITE}/#/item/A1"
        assert item["img"] == "https://img/a1.png"
        assert item["is_price_drop"] is True
        assert item["old_price"] == "$50.00"
        assert item["new_price"] == "$40.00"
        assert item["save"] == "$10 (20%)"
        assert item["is_best_price"] is True
        assert item["matched_rule_ids"] == ["r1"]

    def test_item_without_drop_amounts(self):
        """Test that unknown savings leave the save line empty."""
        item = build_item(matched_event(drop_abs=None, drop_pct=None), SITE)
        assert item["save"] == ""

    def test_unknown_sku_name(self):
        """Test the display name fallback."""
        item = build_item(matched_event("GLOBAL_NEW", name=""), SITE)
        assert item["name"] == "(SKU A1)"
        assert item["event_label"] == "JUST LANDED"
        assert item["is_price_drop"] is False

    def test_groups_keep_first_appearance_order(self):
        """Test grouping by event type in digest order."""
        events = [
            matched_event("GLOBAL_NEW", sku="C3"),
            matched_event("PRICE_DROP", sku="A1"),
            matched_event("PRICE_DROP", sku="B2"),
        ]
        groups = group_events(events, SITE)

        assert [(g["title"], g["count"]) for g in groups] == [("Just landed", 1), ("On sale", 2)]
        assert [item["sku"] for item in groups[1]["items"]] == ["A1", "B2"]


class TestSummary:
    """Tests for the summary blurb."""

    def test_short_summary(self):
        """Test the type line for small digests."""
        summary = build_summary(
            [
                matched_event("PRICE_DROP"),
                matched_event("GLOBAL_NEW", sku="B2"),
                matched_event("OUT_OF_STOCK", sku="C3"),
            ]
        )

        assert summary["detailed"] is False
        assert summary["type_line"] == "3 updates · 1 sale, 1 just landed, 0 back, 1 out"
        assert summary["lines"] == [summary["type_line"] + ".", INTRO_SHORT]

    def test_detailed_summary(self):
        """Test highlights for digests with more than ten entries."""
        events = [
            matched_event("PRICE_DROP", sku="A1", name="Ardbeg Ten", drop_abs=5, drop_pct=10),
            matched_event(
                "PRICE_DROP", sku="B2", name="Ardbeg Uigeadail", drop_abs=20, drop_pct=25,
                is_cheapest_now=True, store_label="Store Two",
            ),
        ]
        events += [
            matched_event("GLOBAL_NEW", sku=f"N{i}", name=f"Lagavulin {i}", store_label="Store One")
            for i in range(6)
        ]
        events += [
            matched_event("GLOBAL_RETURN", sku=f"R{i}", name=f"Talisker {i}", store_label="Store Three")
            for i in range(3)
        ]

        summary = build_summary(events)

        assert summary["detailed"] is True
        assert summary["type_line"] == "11 updates · 2 sales, 6 just landed, 3 back, 0 out"
        assert summary["highlights"] == [
            "Best deal: Ardbeg Uigeadail, save $20 (25%) at Store Two (best price).",
            "Just landed: Store One (6).",
            "Back in stock: Store Three (3).",
            "Trending: Lagavulin, Talisker, Ardbeg Ten, Ardbeg Uigeadail.",
        ]
        assert summary["intro"] == INTRO_LONG
        assert summary["lines"][-1] == INTRO_LONG

    def test_best_deal_line_without_store(self):
        """Test the best deal line when store and savings are missing."""
        event = matched_event(store_label="", drop_abs=None, drop_pct=None)
        assert best_deal_line(event) == "Best deal: Alpha Widget, save ?."
        assert best_deal_line(None) == ""


class TestFooter:
    """Tests for the footer commit link."""

    def test_commit_link(self, digest_config):
        """Test that a range and repo give a commit link."""
        footer = build_footer(digest_config, CommitRange(from_sha="a" * 40, to_sha="0123456789abcdef0123"))
        assert footer["commit_short"] == "0123456789ab"
        assert footer["report_url"] == "https://github.com/example/market-data/commit/0123456789abcdef0123"

    def test_no_range(self, digest_config):
        """Test that a pack without a range links to the repository."""
        footer = build_footer(digest_config, None)
        assert footer == {"commit_short": "unknown", "report_url": "https://github.com/example/market-data"}

    def test_no_repo(self):
        """Test that the site URL is the fallback link."""
        config = DigestConfig(site_url=SITE)
        footer = build_footer(config, CommitRange(from_sha="a", to_sha="b"))
        assert footer == {"commit_short": "b", "report_url": SITE}


class TestDigestContext:
    """Tests for build_digest_context."""

    def test_context_keys(self, digest_config):
        """Test the full template context."""
        job = delivery_job([matched_event(), matched_event("GLOBAL_NEW", sku="B2")])

        context = build_digest_context(job, digest_config)

        assert context["brand_name"] == "Market Alerts"
        assert context["recipient"] == "user@example.com"
        assert context["total"] == 2
        assert len(context["groups"]) == 2
        assert context["summary"]["detailed"] is False
        assert context["footer"]["commit_short"] == "unknown"
