"""Device and geography fraud scoring rules."""

from collections import Counter
from datetime import timedelta

from ..config import FraudConfig
from ..models import RuleResult, Transaction
from .base import FraudRule, ScoringInput


def home_country(transactions: list[Transaction]) -> str | None:
    """Most frequent country in the window; ties go to the first seen."""
    if not transactions:
        return None
    counts = Counter(t.country for t in transactions)
    best = max(counts.values())
    # Counter preserves first-insertion order
    return next(country for country, count in counts.items() if count == best)


class DeviceChangeRule(FraudRule):
    """Triggers when the subject device breaks a uniform run of one prior device.

    Looks at the most recent prior transactions (strictly earlier than the
    subject). With no prior device history the rule cannot fire.
    """

    rule_id = "device_change"
    category = "geo"

    def evaluate(self, ctx: ScoringInput, config: FraudConfig) -> RuleResult:
        if not ctx.subject.device_id:
            return self._not_triggered()

        prior = sorted(
            (t for t in ctx.transactions if t.ts < ctx.now),
            key=lambda t: t.ts,
            reverse=True,
        )[: config.geo.device_lookback_count]
        devices = [t.device_id for t in prior if t.device_id is not None]
        if not devices:
            return self._not_triggered()

        typical = devices[0]
        if ctx.subject.device_id == typical or any(d != typical for d in devices):
            return self._not_triggered()

        return self._triggered(
            points=config.geo.device_change_points,
            reason="New device detected - potential account takeover risk",
            evidence={"typical_device": typical, "lookback": len(devices)},
        )


class MultiCountryRule(FraudRule):
    """Triggers when the last 24h span too many distinct countries."""

    rule_id = "multi_country"
    category = "geo"

    def evaluate(self, ctx: ScoringInput, config: FraudConfig) -> RuleResult:
        window = timedelta(hours=config.geo.multi_country_window_hours)
        countries = list(dict.fromkeys(t.country for t in ctx.in_window(window)))
        if ctx.subject.country not in countries:
            countries.append(ctx.subject.country)

        if len(countries) < config.geo.multi_country_min:
            return self._not_triggered()

        return self._triggered(
            points=config.geo.multi_country_points,
            reason=(
                f"Foreign transactions in {len(countries)} countries within 24h: "
                f"{', '.join(countries)}"
            ),
            evidence={"countries": countries},
        )


class CrossBorderRule(FraudRule):
    """Triggers when the subject country differs from the customer's home country."""

    rule_id = "cross_border"
    category = "geo"

    def evaluate(self, ctx: ScoringInput, config: FraudConfig) -> RuleResult:
        home = home_country(ctx.transactions) or config.geo.default_home_country
        if home is None or ctx.subject.country == home:
            return self._not_triggered()

        return self._triggered(
            points=config.geo.cross_border_points,
            reason=f"Foreign transaction: {ctx.subject.country}",
            evidence={"home_country": home, "country": ctx.subject.country},
        )
