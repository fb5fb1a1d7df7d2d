from typing import List, Optional

from loguru import logger

from ecogrid.core.algorithms.prediction import DemandPredictor, HistoricalDataPoint, PredictionResult
from ecogrid.core.persistence.history import HistoryStore


class DataPipeline:
    """
    Conecta a Camada de Persistência (B+ Tree) à Camada de Inteligência (Prediction).
    """

    @staticmethod
    def extract(history: HistoryStore, start_time: float, end_time: float) -> List[HistoricalDataPoint]:
        """Range query na B+ Tree convertida em pontos históricos."""
        return history.to_data_points(start_time, end_time)

    @staticmethod
    def extract_and_predict(history: HistoryStore, start_time: float, end_time: float,
                            predictor: Optional[DemandPredictor] = None) -> PredictionResult:
        """
        1. Extrai o histórico do intervalo (Range Query).
        2. Alimenta o preditor (Linear + MLP).
        """
        points = DataPipeline.extract(history, start_time, end_time)
        if len(points) < 2:
            logger.warning(f"Dados insuficientes para predição no intervalo [{start_time}, {end_time}]: {len(points)} ponto(s)")
            raise ValueError("Precisa de pelo menos 2 pontos históricos para predição")

        result = (predictor or DemandPredictor()).predict(points)
        logger.info(f"Predição com {len(points)} pontos: {result.predicted_value:.2f} (risco {result.overload_risk:.2f})")
        return result
