import math
from dataclasses import dataclass
from typing import List, Optional

from dataclasses_json import LetterCase, dataclass_json
from loguru import logger

from ecogrid.core.algorithms.neural_net import SimpleMLP


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class HistoricalDataPoint:
    timestamp: float
    consumption: float


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class PredictionResult:
    predicted_value: float
    error_margin: float
    overload_risk: float


class LinearRegression:
    """Mínimos quadrados sobre (timestamp, consumo)."""

    def __init__(self):
        self.slope = 0.0
        self.intercept = 0.0
        self.trained = False

    def train(self, data: List[HistoricalDataPoint]):
        if len(data) < 2:
            raise ValueError("Precisa de pelo menos 2 pontos para treinar a regressão linear")

        n = len(data)
        mean_x = sum(p.timestamp for p in data) / n
        mean_y = sum(p.consumption for p in data) / n

        # Forma centrada: evita o cancelamento catastrófico de Σx² com timestamps em ms
        sxx = sum((p.timestamp - mean_x) ** 2 for p in data)
        sxy = sum((p.timestamp - mean_x) * (p.consumption - mean_y) for p in data)

        if abs(sxx) < 1e-10:
            self.slope = 0.0
            self.intercept = mean_y
        else:
            self.slope = sxy / sxx
            self.intercept = mean_y - self.slope * mean_x
        self.trained = True

    def predict(self, timestamp: float) -> float:
        if not self.trained:
            raise RuntimeError("Modelo não foi treinado ainda")
        return self.slope * timestamp + self.intercept

    def calculate_mse(self, data: List[HistoricalDataPoint]) -> float:
        if not self.trained or not data:
            return 0.0
        return sum((p.consumption - self.predict(p.timestamp)) ** 2 for p in data) / len(data)

    def calculate_error_std_dev(self, data: List[HistoricalDataPoint]) -> float:
        return math.sqrt(self.calculate_mse(data))


class DemandPredictor:
    """
    Módulo Híbrido: Regressão Linear + MLP.
    Com 5 pontos ou mais as duas previsões são combinadas (0.4 linear / 0.6 MLP);
    abaixo disso só a regressão linear é usada.
    """
    LINEAR_WEIGHT = 0.4
    MLP_WEIGHT = 0.6
    MIN_POINTS_FOR_MLP = 5
    MLP_EPOCHS = 500
    CAPACITY_THRESHOLD = 80.0   # capacidade de referência por nó (80% de 100A)

    def __init__(self, mlp_seed: Optional[int] = None):
        self.mlp_seed = mlp_seed

    def predict(self, historical: List[HistoricalDataPoint]) -> PredictionResult:
        if len(historical) < 2:
            raise ValueError("Precisa de pelo menos 2 pontos históricos para predição")

        data = sorted(historical, key=lambda p: p.timestamp)
        next_timestamp = data[-1].timestamp + (data[-1].timestamp - data[-2].timestamp)

        linear = LinearRegression()
        linear.train(data)
        linear_prediction = linear.predict(next_timestamp)
        linear_error = linear.calculate_error_std_dev(data)

        use_mlp = len(data) >= self.MIN_POINTS_FOR_MLP
        mlp_prediction, mlp_error = linear_prediction, linear_error
        if use_mlp:
            try:
                mlp = SimpleMLP(hidden_size=10, learning_rate=0.01, epochs=self.MLP_EPOCHS, seed=self.mlp_seed)
                mlp.train(data)
                mlp_prediction = mlp.predict(next_timestamp)
                mlp_error = mlp.calculate_error_std_dev(data)
            except (ValueError, FloatingPointError) as e:
                logger.warning(f"Erro ao treinar MLP, usando apenas regressão linear: {e}")
                mlp_prediction, mlp_error = linear_prediction, linear_error

        if use_mlp:
            predicted = linear_prediction * self.LINEAR_WEIGHT + mlp_prediction * self.MLP_WEIGHT
            error_margin = linear_error * self.LINEAR_WEIGHT + mlp_error * self.MLP_WEIGHT
        else:
            predicted = linear_prediction
            error_margin = linear_error

        return PredictionResult(
            predicted_value=max(0.0, predicted),
            error_margin=max(0.0, error_margin),
            overload_risk=self._overload_risk(data, predicted),
        )

    def _overload_risk(self, data: List[HistoricalDataPoint], predicted: float) -> float:
        current = data[-1].consumption
        average = sum(p.consumption for p in data) / len(data)
        trend = predicted - current

        if average > 0:
            trend_risk = self._clamp(trend / (average * 0.1))
        else:
            trend_risk = 1.0 if trend > 0 else 0.0

        normalized_prediction = predicted / self.CAPACITY_THRESHOLD * 100
        capacity_risk = self._clamp((normalized_prediction - 50) / 50)

        return self._clamp(capacity_risk * 0.6 + trend_risk * 0.4)

    @staticmethod
    def _clamp(value: float) -> float:
        return max(0.0, min(1.0, value))
