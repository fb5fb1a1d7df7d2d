# ecogrid/core/algorithms/neural_net.py
import math
from typing import List, Optional

import numpy as np


class SimpleMLP:
    """
    Rede Neural (MLP) para séries de consumo.
    Arquitetura: Input (timestamp normalizado) -> Hidden (ReLU) -> Output (Linear)
    Treino por SGD amostra a amostra sobre dados normalizados por min-max.
    """
    def __init__(self, hidden_size: int = 10, learning_rate: float = 0.01, epochs: int = 1000,
                 seed: Optional[int] = None):
        if hidden_size < 1 or epochs < 1 or learning_rate <= 0:
            raise ValueError("Hiperparâmetros inválidos para a MLP")
        self.input_size = 1
        self.hidden_size = hidden_size
        self.learning_rate = learning_rate
        self.epochs = epochs
        self._rng = np.random.default_rng(seed)

        self.trained = False
        self.min_timestamp = 0.0
        self.max_timestamp = 1.0
        self.min_consumption = 0.0
        self.max_consumption = 1.0

    def _initialize_weights(self):
        # Inicialização He (ReLU) com bias pequenos
        self.weights_ih = (self._rng.random((self.hidden_size, self.input_size)) - 0.5) * 2 * math.sqrt(2.0 / self.input_size)
        self.bias_h = (self._rng.random(self.hidden_size) - 0.5) * 0.1
        self.weights_ho = (self._rng.random(self.hidden_size) - 0.5) * 2 * math.sqrt(2.0 / self.hidden_size)
        self.bias_o = (self._rng.random() - 0.5) * 0.1

    @staticmethod
    def _normalize(value: float, low: float, high: float) -> float:
        if high == low:
            return 0.5
        return (value - low) / (high - low)

    @staticmethod
    def _denormalize(value: float, low: float, high: float) -> float:
        return value * (high - low) + low

    def _forward(self, x: float):
        pre_activation = self.weights_ih[:, 0] * x + self.bias_h
        hidden = np.maximum(pre_activation, 0.0)
        output = float(hidden @ self.weights_ho + self.bias_o)
        return pre_activation, hidden, output

    def train(self, data: List):
        if len(data) < 2:
            raise ValueError("Precisa de pelo menos 2 pontos para treinar o MLP")

        timestamps = [p.timestamp for p in data]
        consumptions = [p.consumption for p in data]
        self.min_timestamp, self.max_timestamp = min(timestamps), max(timestamps)
        self.min_consumption, self.max_consumption = min(consumptions), max(consumptions)

        inputs = [self._normalize(t, self.min_timestamp, self.max_timestamp) for t in timestamps]
        targets = [self._normalize(c, self.min_consumption, self.max_consumption) for c in consumptions]

        self._initialize_weights()

        for _ in range(self.epochs):
            for x, target in zip(inputs, targets):
                pre_activation, hidden, output = self._forward(x)
                output_delta = target - output

                # Backpropagation (derivada da ReLU = 1 para pré-ativação positiva)
                hidden_delta = self.weights_ho * output_delta * (pre_activation > 0)

                self.weights_ho += self.learning_rate * output_delta * hidden
                self.bias_o += self.learning_rate * output_delta
                self.weights_ih[:, 0] += self.learning_rate * hidden_delta * x
                self.bias_h += self.learning_rate * hidden_delta

        if not (np.all(np.isfinite(self.weights_ho)) and np.all(np.isfinite(self.weights_ih))):
            raise ValueError("Treino da MLP divergiu (pesos não finitos)")

        self.trained = True

    def predict(self, timestamp: float) -> float:
        if not self.trained:
            raise RuntimeError("Modelo não foi treinado ainda")
        x = self._normalize(timestamp, self.min_timestamp, self.max_timestamp)
        _, _, output = self._forward(x)
        return self._denormalize(output, self.min_consumption, self.max_consumption)

    def calculate_mse(self, data: List) -> float:
        if not self.trained or not data:
            return 0.0
        return sum((p.consumption - self.predict(p.timestamp)) ** 2 for p in data) / len(data)

    def calculate_error_std_dev(self, data: List) -> float:
        return math.sqrt(self.calculate_mse(data))
