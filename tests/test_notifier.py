"""Unit tests for price update notifications."""

import smtplib
from unittest.mock import patch

from cenniki.core.config import Settings
from cenniki.schemas.price_change import AtomicChange
from cenniki.services.notifier import (
    PriceChangeNotifier,
    build_model_change_summary,
    render_summary_html,
)


def _change(product, percent, category=None, group="A") -> AtomicChange:
    return AtomicChange(
        id=f"{product}-{group}",
        product=product,
        category=category,
        price_group=group,
        old_price=100,
        new_price=100 + percent,
        percent_change=percent,
    )


def _smtp_settings(**overrides) -> Settings:
    values = {
        "SMTP_USER": "cenniki@example.com",
        "SMTP_PASS": "secret",
        "NOTIFICATION_EMAIL": "biuro@example.com",
    }
    values.update(overrides)
    return Settings(**values)


# ============================================================================
# Summary
# ============================================================================


class TestBuildModelChangeSummary:
    """Tests for grouping changes per product."""

    def test_groups_per_product(self) -> None:
        summary = build_model_change_summary([
            _change("TRIM", 10.0, category="stoły", group="A"),
            _change("TRIM", 20.0, category="stoły", group="B"),
            _change("M1", -5.0),
        ])

        assert [(m.name, m.percent_change, m.changed_cells) for m in summary.price_increased] == [
            ("stoły / TRIM", 15.0, 2),
        ]
        assert [m.name for m in summary.price_decreased] == ["M1"]

    def test_sorted_by_magnitude(self) -> None:
        summary = build_model_change_summary([
            _change("A", -2.0), _change("B", -8.0), _change("C", 3.0), _change("D", 9.0),
        ])

        assert [m.name for m in summary.price_decreased] == ["B", "A"]
        assert [m.name for m in summary.price_increased] == ["D", "C"]

    def test_zero_average_is_dropped(self) -> None:
        summary = build_model_change_summary([
            _change("X", 10.0, group="A"),
            _change("X", -10.0, group="B"),
        ])

        assert summary.is_empty

    def test_factor_change(self) -> None:
        factor = {"oldFactor": 1.0, "newFactor": 1.1, "percentChange": 10.0}

        summary = build_model_change_summary([], factor_change=factor)

        assert not summary.is_empty
        assert summary.to_dict() == {"factorChange": factor, "priceIncreased": [], "priceDecreased": []}

    def test_render_escapes_names(self) -> None:
        summary = build_model_change_summary([_change("<b>Sofa</b>", 5.0)])

        rendered = render_summary_html("A&B", summary)

        assert "&lt;b&gt;Sofa&lt;/b&gt;" in rendered
        assert "A&amp;B" in rendered
        assert "+5.0%" in rendered


# ============================================================================
# Delivery
# ============================================================================


class TestPriceChangeNotifier:
    """Tests for e-mail delivery."""

    def test_skipped_without_smtp_credentials(self) -> None:
        notifier = PriceChangeNotifier(Settings(SMTP_USER="", SMTP_PASS=""))
        try:
            assert notifier.notify_price_update("Bomar", build_model_change_summary([_change("X", 5.0)])) is None
        finally:
            notifier.shutdown()

    def test_empty_summary_is_not_sent(self) -> None:
        notifier = PriceChangeNotifier(_smtp_settings())
        try:
            assert notifier.notify_price_update("Bomar", build_model_change_summary([])) is None
        finally:
            notifier.shutdown()

    def test_sends_mail(self) -> None:
        notifier = PriceChangeNotifier(_smtp_settings())
        with patch("cenniki.services.notifier.smtplib.SMTP") as smtp_cls:
            future = notifier.notify_price_update("Bomar", build_model_change_summary([_change("X", 5.0)]))
            assert future.result(timeout=5) is True
            notifier.shutdown()

        smtp = smtp_cls.return_value
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("cenniki@example.com", "secret")
        from_addr, recipients, message = smtp.sendmail.call_args[0]
        assert from_addr == "cenniki@example.com"
        assert recipients == ["biuro@example.com"]
        assert "Subject: Zmiany w cenniku: Bomar (1)" in message

    def test_ssl_connection(self) -> None:
        notifier = PriceChangeNotifier(_smtp_settings(SMTP_SECURE=True, SMTP_PORT=465))
        with patch("cenniki.services.notifier.smtplib.SMTP_SSL") as smtp_cls:
            future = notifier.notify_price_update("Bomar", build_model_change_summary([_change("X", 5.0)]))
            assert future.result(timeout=5) is True
            notifier.shutdown()

        smtp_cls.assert_called_once_with("smtp.gmail.com", 465, timeout=10)
        smtp_cls.return_value.starttls.assert_not_called()

    def test_delivery_failure_is_swallowed(self) -> None:
        notifier = PriceChangeNotifier(_smtp_settings())
        with patch("cenniki.services.notifier.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
            future = notifier.notify_price_update("Bomar", build_model_change_summary([_change("X", 5.0)]))
            assert future.result(timeout=5) is False
            notifier.shutdown()

    def test_after_shutdown(self) -> None:
        notifier = PriceChangeNotifier(_smtp_settings())
        notifier.shutdown()

        assert notifier.notify_price_update("Bomar", build_model_change_summary([_change("X", 5.0)])) is None
