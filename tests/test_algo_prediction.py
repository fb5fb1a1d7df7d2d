import sys
import os

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ecogrid.core.algorithms.prediction import DemandPredictor, HistoricalDataPoint, LinearRegression


def series(values, start=0, step=1):
    return [HistoricalDataPoint(timestamp=start + i * step, consumption=v) for i, v in enumerate(values)]


def test_linear_regression():
    print("--- Iniciando Teste de Previsão ---")

    # Cenário 1: Carga subindo constantemente (Rampa Perfeita)
    # 10, 20, 30, 40, 50 ... O próximo DEVE ser 60.
    ramp = series([10.0, 20.0, 30.0, 40.0, 50.0])
    model = LinearRegression()
    model.train(ramp)

    predicted_val = model.predict(5)
    print(f"Valor previsto para o próximo passo: {predicted_val}")
    assert abs(predicted_val - 60.0) < 0.001, f"Erro: Esperado 60.0, obteve {predicted_val}"
    assert model.calculate_mse(ramp) == pytest.approx(0, abs=1e-9)

    # Cenário 2: Carga estável
    flat = series([100.0, 100.0, 100.0, 100.0])
    model.train(flat)
    assert abs(model.predict(3) - 100.0) < 0.001, "Erro na previsão estável"

    print(">> SUCESSO: Regressão Linear identificou as tendências.")


def test_linear_regression_with_millisecond_timestamps():
    # Timestamps reais em ms: a forma centrada mantém a precisão
    points = series([40.0, 42.0, 44.0, 46.0], start=1_700_000_000_000, step=3_600_000)
    model = LinearRegression()
    model.train(points)
    assert model.predict(1_700_000_000_000 + 4 * 3_600_000) == pytest.approx(48.0, rel=1e-6)


def test_linear_regression_degenerate_timestamps():
    points = [HistoricalDataPoint(5, 10.0), HistoricalDataPoint(5, 30.0)]
    model = LinearRegression()
    model.train(points)
    assert model.slope == 0.0
    assert model.predict(999) == pytest.approx(20.0)


def test_linear_regression_errors():
    model = LinearRegression()
    with pytest.raises(RuntimeError):
        model.predict(1)
    with pytest.raises(ValueError):
        model.train(series([1.0]))
    assert model.calculate_mse([]) == 0.0


def test_predictor_linear_only_below_mlp_minimum():
    predictor = DemandPredictor()
    result = predictor.predict(series([10.0, 20.0, 30.0, 40.0]))

    assert result.predicted_value == pytest.approx(50.0)
    assert result.error_margin == pytest.approx(0.0, abs=1e-9)
    # capacidade: (62.5 - 50) / 50 = 0.25; tendência: 10 / 2.5 -> 1
    assert result.overload_risk == pytest.approx(0.25 * 0.6 + 1.0 * 0.4)


def test_predictor_sorts_input_by_timestamp():
    ordered = DemandPredictor().predict(series([10.0, 20.0, 30.0, 40.0]))
    shuffled = DemandPredictor().predict(list(reversed(series([10.0, 20.0, 30.0, 40.0]))))
    assert shuffled.predicted_value == pytest.approx(ordered.predicted_value)


@pytest.mark.parametrize("values, expected_risk", [
    ([100.0, 100.0, 100.0, 100.0], 0.6),   # capacidade saturada, sem tendência
    ([0.0, 0.0, 0.0], 0.0),                 # média zero, sem tendência
    ([30.0, 20.0, 10.0, 0.0], 0.0),         # queda: previsão negativa
])
def test_overload_risk_is_clamped(values, expected_risk):
    result = DemandPredictor().predict(series(values))
    assert result.overload_risk == pytest.approx(expected_risk)
    assert result.predicted_value >= 0.0


def test_trend_risk_with_zero_average():
    predictor = DemandPredictor()
    points = series([0.0, 0.0])
    assert predictor._overload_risk(points, 10.0) == pytest.approx(0.4)
    assert predictor._overload_risk(points, 0.0) == 0.0


def test_hybrid_prediction():
    print("--- Iniciando Teste Híbrido (Linear + MLP) ---")
    history = series([10.0, 20.0, 30.0, 40.0, 50.0, 60.0, 70.0, 80.0])

    result = DemandPredictor(mlp_seed=11).predict(history)
    print(f"Previsão do Modelo: {result.predicted_value:.2f} ± {result.error_margin:.2f}")

    # Linear sozinha daria 90; a combinação deve ficar na mesma vizinhança
    assert 50.0 < result.predicted_value < 130.0
    assert result.error_margin >= 0.0
    assert 0.0 <= result.overload_risk <= 1.0
    print(">> SUCESSO: Predição híbrida dentro da faixa esperada.")


def test_predictor_requires_two_points():
    with pytest.raises(ValueError):
        DemandPredictor().predict(series([42.0]))


if __name__ == "__main__":
    test_linear_regression()
    test_hybrid_prediction()
