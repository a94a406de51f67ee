"""
E-mail notifications about price list updates.

Sending is fire-and-forget: messages are rendered and delivered via SMTP
on a single background worker thread, so a slow or failing mail server
never blocks a request or a scheduler run. When SMTP credentials are not
configured, notifications are silently skipped.
"""

import html
import logging
import smtplib
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional, Sequence

from cenniki.core.config import Settings
from cenniki.schemas.price_change import AtomicChange
from cenniki.services.price_diff import round_percent

logger = logging.getLogger(__name__)


@dataclass
class ModelPriceChange:
    """Average price movement of one product across its changed cells"""
    name: str
    percent_change: float
    changed_cells: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "percentChange": self.percent_change, "changedCells": self.changed_cells}


@dataclass
class ModelChangeSummary:
    """Per-product digest of a price update, as sent in notifications"""
    price_increased: List[ModelPriceChange] = field(default_factory=list)
    price_decreased: List[ModelPriceChange] = field(default_factory=list)
    factor_change: Optional[Dict[str, float]] = None

    @property
    def is_empty(self) -> bool:
        return not self.price_increased and not self.price_decreased and self.factor_change is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factorChange": self.factor_change,
            "priceIncreased": [m.to_dict() for m in self.price_increased],
            "priceDecreased": [m.to_dict() for m in self.price_decreased],
        }


def build_model_change_summary(
    changes: Sequence[AtomicChange],
    factor_change: Optional[Dict[str, float]] = None,
) -> ModelChangeSummary:
    """
    Group atomic changes per product.

    Products are keyed by "<category> / <product>" when the change carries
    a category. Each product lands in priceIncreased or priceDecreased by
    the sign of its average percent change; a zero average is dropped.

    Args:
        changes: Atomic changes of one update
        factor_change: Optional {"oldFactor", "newFactor", "percentChange"}
    """
    grouped: Dict[str, List[float]] = {}
    for change in changes:
        name = f"{change.category} / {change.product}" if change.category else change.product
        grouped.setdefault(name, []).append(change.percent_change)

    summary = ModelChangeSummary(factor_change=factor_change)
    for name, percents in grouped.items():
        model = ModelPriceChange(
            name=name,
            percent_change=round_percent(sum(percents) / len(percents)),
            changed_cells=len(percents),
        )
        if model.percent_change > 0:
            summary.price_increased.append(model)
        elif model.percent_change < 0:
            summary.price_decreased.append(model)

    summary.price_increased.sort(key=lambda m: m.percent_change, reverse=True)
    summary.price_decreased.sort(key=lambda m: m.percent_change)
    return summary


def render_summary_html(producer_name: str, summary: ModelChangeSummary) -> str:
    name = html.escape(producer_name)
    parts = [f"<h2>Zmiany w cenniku: {name}</h2>"]

    if summary.factor_change:
        fc = summary.factor_change
        parts.append(
            f"<p>Faktor: {fc.get('oldFactor')} &rarr; {fc.get('newFactor')} "
            f"({fc.get('percentChange', 0):+.1f}%)</p>"
        )

    for title, models in (("Podwyżki", summary.price_increased), ("Obniżki", summary.price_decreased)):
        if not models:
            continue
        parts.append(f"<h3>{title} ({len(models)})</h3><ul>")
        for model in models:
            parts.append(
                f"<li>{html.escape(model.name)}: {model.percent_change:+.1f}% "
                f"({model.changed_cells} cen)</li>"
            )
        parts.append("</ul>")

    return "\n".join(parts)


class PriceChangeNotifier:
    """
    Sends price update e-mails.

    Example:
        >>> notifier = PriceChangeNotifier(settings)
        >>> notifier.notify_price_update("Bomar", build_model_change_summary(changes))
        >>> notifier.shutdown()
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="notifier")

    @property
    def enabled(self) -> bool:
        return self._settings.smtp_configured

    def notify_price_update(self, producer_name: str, summary: ModelChangeSummary) -> Optional[Future]:
        """
        Queue an update e-mail.

        Returns the Future of the delivery, or None when nothing was queued
        (SMTP not configured or an empty summary). Never raises.
        """
        if not self.enabled:
            logger.debug(f"SMTP not configured, skipping notification for {producer_name}")
            return None
        if summary.is_empty:
            return None

        try:
            return self._executor.submit(self._deliver, producer_name, summary)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning(f"Notification for {producer_name} dropped: {e}")
            return None

    def _deliver(self, producer_name: str, summary: ModelChangeSummary) -> bool:
        s = self._settings
        recipient = s.NOTIFICATION_EMAIL or s.SMTP_USER
        changed = len(summary.price_increased) + len(summary.price_decreased)

        msg = MIMEText(render_summary_html(producer_name, summary), "html", "utf-8")
        msg["Subject"] = f"Zmiany w cenniku: {producer_name} ({changed})"
        msg["From"] = f"Cenniki - {producer_name} <{s.SMTP_USER}>"
        msg["To"] = recipient

        try:
            if s.SMTP_SECURE:
                smtp = smtplib.SMTP_SSL(s.SMTP_HOST, s.SMTP_PORT, timeout=s.SMTP_TIMEOUT_SECONDS)
            else:
                smtp = smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=s.SMTP_TIMEOUT_SECONDS)
            with smtp:
                if not s.SMTP_SECURE:
                    smtp.starttls()
                smtp.login(s.SMTP_USER, s.SMTP_PASS)
                smtp.sendmail(s.SMTP_USER, [recipient], msg.as_string())
            logger.info(f"Price update notification for {producer_name} sent to {recipient}")
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"Failed to send notification for {producer_name}: {e}")
            return False

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
