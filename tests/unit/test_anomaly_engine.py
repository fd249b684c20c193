"""
Unit tests for the store anomaly engine.
"""

import pytest

from src.anomaly.engine import AnomalyEngine
from src.anomaly.schema import AnomalySeverity, AnomalyType
from src.core.config import AnomalyConfig, AnomalyThresholds, BaselineConfig
from src.core.exceptions import AnomalyDetectionError
from src.data.schema import StoreRecord


def _store(name: str, **overrides) -> StoreRecord:
    return StoreRecord(store_name=name, **overrides)


def _peers(count: int = 9, **fields) -> list:
    return [_store(f"Peer {i}", **fields) for i in range(count)]


def test_empty_input_returns_no_anomalies():
    engine = AnomalyEngine()

    stats = engine.baselines([])
    assert not stats.net_profit_pct.is_defined
    assert not stats.gross_profit_pct.is_defined
    assert not stats.sales.is_defined
    assert engine.detect([]) == []


def test_far_outlier_is_high_severity_underperformer():
    # nine at 10% and one at -50%: mean 4%, population stddev 18%
    stores = _peers(net_profit_pct=0.10) + [_store("Jahra", net_profit_pct=-0.50)]

    records = AnomalyEngine().detect(stores)

    assert len(records) == 1
    record = records[0]
    assert record.store_name == "Jahra"
    assert record.type == AnomalyType.UNDERPERFORMING
    assert record.metric == "Net Profit %"
    assert record.value == pytest.approx(-0.50)
    assert record.threshold == "Avg: 4.0%"
    assert record.severity == AnomalySeverity.HIGH


def test_positive_outlier_is_low_severity_outperformer():
    stores = _peers(net_profit_pct=0.10) + [_store("Avenues", net_profit_pct=0.70)]

    records = AnomalyEngine().detect(stores)

    assert [(r.store_name, r.type, r.severity) for r in records] == [
        ("Avenues", AnomalyType.OUTPERFORMING, AnomalySeverity.LOW)
    ]
    assert records[0].threshold == "Avg: 16.0%"


def test_low_margin_is_always_medium():
    # 0.0 sits beyond two standard deviations and still maps to medium
    stores = _peers(gross_profit_pct=0.65) + [_store("Airport", gross_profit_pct=0.0)]

    records = AnomalyEngine().detect(stores)

    assert len(records) == 1
    assert records[0].type == AnomalyType.LOW_MARGIN
    assert records[0].metric == "Gross Profit %"
    assert records[0].severity == AnomalySeverity.MEDIUM


def test_four_store_scenario_flags_only_the_outlier():
    stores = [
        _store("A", net_profit_pct=-0.50),
        _store("B", net_profit_pct=0.10),
        _store("C", net_profit_pct=0.12),
        _store("D", net_profit_pct=0.11),
    ]
    engine = AnomalyEngine()

    stats = engine.baselines(stores)
    assert stats.net_profit_pct.mean == pytest.approx(-0.0425)
    assert stats.net_profit_pct.stddev == pytest.approx(0.264232, abs=1e-6)

    records = engine.detect(stores)

    # -0.50 is below mean - 1.5σ (-0.4388) but above mean - 2σ (-0.5710)
    assert [(r.store_name, r.type, r.severity) for r in records] == [
        ("A", AnomalyType.UNDERPERFORMING, AnomalySeverity.MEDIUM)
    ]


def test_four_store_scenario_with_sample_deviation_flags_nothing():
    stores = [
        _store("A", net_profit_pct=-0.50),
        _store("B", net_profit_pct=0.10),
        _store("C", net_profit_pct=0.12),
        _store("D", net_profit_pct=0.11),
    ]
    engine = AnomalyEngine(settings=AnomalyConfig(baselines=BaselineConfig(ddof=1)))

    assert engine.detect(stores) == []


def test_budget_threshold_is_strict():
    stores = [
        _store("E", sales=800.0, budget=1000.0),
        _store("F", sales=790.0, budget=1000.0),
        _store("G", sales=680.0, budget=1000.0),
    ]

    records = AnomalyEngine().detect(stores)

    assert [(r.store_name, r.severity) for r in records] == [
        ("F", AnomalySeverity.MEDIUM),
        ("G", AnomalySeverity.HIGH),
    ]
    for record in records:
        assert record.type == AnomalyType.BUDGET_MISS
        assert record.metric == "Sales vs Budget"
        assert record.threshold == "More than 20% below budget"
    assert records[0].value == pytest.approx(-0.21)
    assert records[1].value == pytest.approx(-0.32)


@pytest.mark.parametrize("budget", [None, 0.0, -500.0])
def test_budget_rule_skips_unusable_budgets(budget):
    records = AnomalyEngine().detect([_store("X", sales=10.0, budget=budget)])

    assert records == []


def test_budget_rule_ignores_profit_baselines():
    budget_stores = [
        _store("F", sales=790.0, budget=1000.0, net_profit_pct=0.10),
        _store("G", sales=680.0, budget=1000.0, net_profit_pct=0.12),
    ]
    calm = budget_stores + _peers(net_profit_pct=0.11, gross_profit_pct=0.6)
    disturbed = budget_stores + _peers(net_profit_pct=-3.0, gross_profit_pct=0.01)

    engine = AnomalyEngine()

    def budget_records(stores):
        return [r for r in engine.detect(stores) if r.type == AnomalyType.BUDGET_MISS]

    assert budget_records(calm) == budget_records(disturbed)
    assert len(budget_records(calm)) == 2


def test_store_can_trigger_several_rules():
    stores = _peers(net_profit_pct=0.10) + [
        _store("Jahra", net_profit_pct=-0.50, sales=680.0, budget=1000.0)
    ]

    records = [r for r in AnomalyEngine().detect(stores) if r.store_name == "Jahra"]

    assert [r.type for r in records] == [AnomalyType.UNDERPERFORMING, AnomalyType.BUDGET_MISS]


def test_output_follows_store_then_rule_order():
    stores = (
        [_store("First", net_profit_pct=0.70, sales=700.0, budget=1000.0)]
        + _peers(net_profit_pct=0.10, gross_profit_pct=0.65)
        + [_store("Last", net_profit_pct=0.10, gross_profit_pct=0.0, sales=500.0, budget=1000.0)]
    )

    records = AnomalyEngine().detect(stores)

    assert [(r.store_name, r.type) for r in records] == [
        ("First", AnomalyType.OUTPERFORMING),
        ("First", AnomalyType.BUDGET_MISS),
        ("Last", AnomalyType.LOW_MARGIN),
        ("Last", AnomalyType.BUDGET_MISS),
    ]


def test_single_observation_never_raises_sigma_flags():
    stores = [
        _store("Only", net_profit_pct=-0.90, gross_profit_pct=0.0),
        _store("Blank"),
    ]

    assert AnomalyEngine().detect(stores) == []


def test_all_null_store_contributes_nothing():
    stores = _peers(net_profit_pct=0.10, gross_profit_pct=0.6) + [_store("Empty")]

    assert [r for r in AnomalyEngine().detect(stores) if r.store_name == "Empty"] == []


def test_underperform_severity_matches_sigma_bands():
    values = [-0.9, -0.6, -0.45, -0.3, -0.1, 0.0, 0.05, 0.1, 0.12, 0.15, 0.2]
    stores = [_store(f"S{i}", net_profit_pct=v) for i, v in enumerate(values)]
    engine = AnomalyEngine()

    baseline = engine.baselines(stores).net_profit_pct
    high_cut = baseline.mean - 2 * baseline.stddev
    medium_cut = baseline.mean - 1.5 * baseline.stddev

    for record in engine.detect(stores):
        if record.type != AnomalyType.UNDERPERFORMING:
            continue
        if record.value < high_cut:
            assert record.severity == AnomalySeverity.HIGH
        else:
            assert medium_cut > record.value >= high_cut
            assert record.severity == AnomalySeverity.MEDIUM


def test_detection_is_deterministic():
    stores = _peers(net_profit_pct=0.10, sales=900.0, budget=1000.0) + [
        _store("Jahra", net_profit_pct=-0.50, sales=600.0, budget=1000.0),
        _store("Avenues", net_profit_pct=0.70, gross_profit_pct=0.2),
    ]
    engine = AnomalyEngine()

    first = [r.model_dump_json() for r in engine.detect(stores)]
    second = [r.model_dump_json() for r in AnomalyEngine().detect(list(stores))]

    assert first == second
    assert first


def test_custom_budget_threshold_changes_label():
    settings = AnomalyConfig(thresholds=AnomalyThresholds(budget_miss=0.10, budget_miss_high=0.30))
    engine = AnomalyEngine(settings=settings)

    records = engine.detect([_store("H", sales=850.0, budget=1000.0)])

    assert len(records) == 1
    assert records[0].severity == AnomalySeverity.MEDIUM
    assert records[0].threshold == "More than 10% below budget"


def test_classify_requires_baselines():
    with pytest.raises(AnomalyDetectionError):
        AnomalyEngine().classify(None, [_store("A", net_profit_pct=0.1)])
